import pytest
import requests
from decimal import Decimal
from unittest.mock import patch, MagicMock

from cli.client import AuctionClient


@pytest.fixture
def auction_client():
    with patch("cli.client.get_token", return_value="stored-token"), \
            patch("cli.client.get_timezone", return_value="America/New_York"):
        client = AuctionClient()
    client.server_url = "http://auction.test"
    return client


def _response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.reason = "Bad Request" if status_code == 400 else "OK"
    response.json.return_value = json_data
    response.text = text
    return response


@patch("cli.client.requests.post")
def test_save_bid_sends_price_as_string(mock_post, auction_client):
    """Test that prices go over the wire as exact decimal strings."""
    mock_post.return_value = _response(json_data={"success": True, "message": "Bid saved successfully"})

    result = auction_client.save_bid(3, 42, 7, Decimal("125.50"), 2)

    assert result["success"] is True
    args, kwargs = mock_post.call_args
    assert args[0] == "http://auction.test/api/save-bid"
    assert kwargs["json"] == {
        "action": "save",
        "auction_id": 3,
        "item_id": 42,
        "bidder_id": 7,
        "winning_price": "125.50",
        "quantity_won": 2,
    }
    assert kwargs["headers"] == {"Authorization": "Bearer stored-token"}


@patch("cli.client.requests.post")
def test_update_bid_omits_price_when_not_given(mock_post, auction_client):
    """Test that an update without a price leaves it out of the payload."""
    mock_post.return_value = _response(json_data={"success": True})

    auction_client.update_bid(5, 7, 3)

    payload = mock_post.call_args[1]["json"]
    assert payload == {"action": "update", "bid_id": 5, "bidder_id": 7, "quantity_won": 3}


@patch("cli.client.requests.post")
def test_error_message_from_server(mock_post, auction_client):
    """Test that the server's error text is surfaced."""
    mock_post.return_value = _response(400, json_data={"error": "Only 2 available in inventory", "available": 2})

    with pytest.raises(requests.exceptions.HTTPError) as exc_info:
        auction_client.save_bid(3, 42, 7, Decimal("10"), 5)
    assert "Only 2 available in inventory" in str(exc_info.value)


@patch("cli.client.requests.get")
def test_check_inventory(mock_get, auction_client):
    """Test the inventory check request."""
    mock_get.return_value = _response(json_data={"available_quantity": 6})

    assert auction_client.check_inventory(42, 3) == {"available_quantity": 6}
    assert mock_get.call_args[1]["params"] == {"item_id": 42, "auction_id": 3}


def test_requires_token():
    """Test that API calls need a stored token."""
    with patch("cli.client.get_token", return_value=None), \
            patch("cli.client.get_timezone", return_value="UTC"):
        client = AuctionClient()
    with pytest.raises(ValueError, match="Not authenticated"):
        client.check_inventory(1, 1)


@patch("cli.client.requests.post")
def test_authenticate(mock_post, auction_client):
    """Test that authenticate stores the returned token."""
    mock_post.return_value = _response(json_data={"token": "new-token"})

    assert auction_client.authenticate("admin", "secret") == "new-token"
    assert auction_client.token == "new-token"


def test_to_local_time(auction_client):
    """Test UTC to local time conversion."""
    assert auction_client.to_local_time("2025-11-15T23:30:00") == "2025-11-15 18:30:00"
    assert auction_client.to_local_time("2025-07-04T16:00:00Z") == "2025-07-04 12:00:00"
