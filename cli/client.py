import requests
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
import pytz
from .config import SERVER_URL, get_token, get_timezone


class AuctionClient:
    """Client for communicating with the auction server."""

    def __init__(self):
        self.server_url = SERVER_URL
        self.token: Optional[str] = get_token()
        self.timezone = pytz.timezone(get_timezone())

    def _get_headers(self) -> Dict[str, str]:
        """Get headers with authentication."""
        if not self.token:
            raise ValueError("Not authenticated. Run 'silent-auction auth' first.")
        return {"Authorization": f"Bearer {self.token}"}

    @staticmethod
    def _check_response(response: requests.Response):
        """Raise HTTPError carrying the server's error message, if any."""
        if response.ok:
            return
        try:
            error_data = response.json()
            error_msg = error_data.get("error") or error_data.get("detail") or response.text
        except ValueError:
            response.raise_for_status()
            return
        raise requests.exceptions.HTTPError(
            f"{response.status_code} {response.reason}: {error_msg}", response=response
        )

    def _get(self, path: str, **params) -> Any:
        response = requests.get(f"{self.server_url}{path}", params=params, headers=self._get_headers())
        self._check_response(response)
        return response.json()

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        response = requests.post(f"{self.server_url}{path}", json=payload, headers=self._get_headers())
        self._check_response(response)
        return response.json()

    def authenticate(self, username: str, password: str) -> str:
        """Authenticate and return token."""
        response = requests.post(
            f"{self.server_url}/auth",
            json={"username": username, "password": password}
        )
        self._check_response(response)
        self.token = response.json()["token"]
        return self.token

    def check_inventory(self, item_id: int, auction_id: int) -> Dict[str, Any]:
        return self._get("/api/inventory-check", item_id=item_id, auction_id=auction_id)

    def save_bid(
        self,
        auction_id: int,
        item_id: int,
        bidder_id: int,
        winning_price: Decimal,
        quantity_won: int = 1,
    ) -> Dict[str, Any]:
        return self._post("/api/save-bid", {
            "action": "save",
            "auction_id": auction_id,
            "item_id": item_id,
            "bidder_id": bidder_id,
            "winning_price": str(winning_price),
            "quantity_won": quantity_won,
        })

    def delete_bid(self, auction_id: int, item_id: int) -> Dict[str, Any]:
        return self._post("/api/save-bid", {"action": "delete", "auction_id": auction_id, "item_id": item_id})

    def update_bid(
        self,
        bid_id: int,
        bidder_id: int,
        quantity_won: int,
        winning_price: Optional[Decimal] = None,
    ) -> Dict[str, Any]:
        payload = {"action": "update", "bid_id": bid_id, "bidder_id": bidder_id, "quantity_won": quantity_won}
        if winning_price is not None:
            payload["winning_price"] = str(winning_price)
        return self._post("/api/update-bid", payload)

    def delete_bid_by_id(self, bid_id: int) -> Dict[str, Any]:
        return self._post("/api/update-bid", {"action": "delete", "bid_id": bid_id})

    def add_items_to_auction(self, auction_id: int, item_ids: List[int]) -> Dict[str, Any]:
        return self._post(f"/api/auctions/{auction_id}/items", {"item_ids": item_ids})

    def save_payment(
        self,
        bidder_id: int,
        auction_id: int,
        amount_paid: Decimal,
        payment_method: str,
        check_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._post("/api/payments", {
            "bidder_id": bidder_id,
            "auction_id": auction_id,
            "amount_paid": str(amount_paid),
            "payment_method": payment_method,
            "check_number": check_number,
            "notes": notes,
        })

    def get_summary(self, auction_id: int) -> Dict[str, Any]:
        return self._get(f"/api/reports/{auction_id}/summary")

    def get_top_performers(self, auction_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        return self._get(f"/api/reports/{auction_id}/top", limit=limit)

    def export_csv(self, auction_id: int, kind: str) -> str:
        """Download a CSV export ("bidders" or "items")."""
        response = requests.get(
            f"{self.server_url}/api/reports/{auction_id}/export/{kind}.csv",
            headers=self._get_headers()
        )
        self._check_response(response)
        return response.text

    def to_local_time(self, utc_time_str: str) -> str:
        """Convert UTC time string to local timezone string."""
        dt_utc = datetime.fromisoformat(utc_time_str.replace("Z", "+00:00"))
        if dt_utc.tzinfo is None:
            dt_utc = pytz.UTC.localize(dt_utc)

        dt_local = dt_utc.astimezone(self.timezone)
        return dt_local.strftime("%Y-%m-%d %H:%M:%S")
