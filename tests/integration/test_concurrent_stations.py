"""
Two bid-entry stations, each with its own database session, working on the same item.
"""
import pytest
from decimal import Decimal
from unittest.mock import patch

from database.models import Item, WinningBid
from server.ledger import BidLedger


@pytest.fixture
def station_sessions(session_factory):
    first, second = session_factory(), session_factory()
    yield first, second
    first.close()
    second.close()


def test_save_sees_quantity_changed_by_other_station(station_sessions, sample_auction, sample_item, bidder_a):
    """The item row is re-read under lock, so a cached quantity is never trusted."""
    first, second = station_sessions
    auction_id, item_id = sample_auction.auction_id, sample_item.item_id

    cached = first.query(Item).filter(Item.item_id == item_id).one()
    assert cached.item_quantity == 10

    second.query(Item).filter(Item.item_id == item_id).one().item_quantity = 2
    second.commit()

    result = BidLedger(first).save_bid(auction_id, item_id, bidder_a.bidder_id, Decimal("30"), 5)
    assert result.success is False
    assert result.error.available == 2


def test_update_sees_quantity_changed_by_other_station(station_sessions, sample_bid, bidder_a):
    first, second = station_sessions
    bid_id, item_id = sample_bid.bid_id, sample_bid.item_id

    first.query(Item).filter(Item.item_id == item_id).one()
    first.query(WinningBid).filter(WinningBid.bid_id == bid_id).one()

    second.query(Item).filter(Item.item_id == item_id).one().item_quantity = 5
    second.commit()

    result = BidLedger(first).update_bid(bid_id, bidder_a.bidder_id, quantity_won=9)
    assert result.success is False
    assert result.error.available == 5


def test_insert_race_is_retried_as_overwrite(station_sessions, sample_auction, sample_item, bidder_a, bidder_b):
    """Another station inserts the pair's first bid between our lookup and our insert."""
    first, second = station_sessions
    auction_id, item_id = sample_auction.auction_id, sample_item.item_id
    real_flush = first.flush
    raced = []

    def racing_flush(*args, **kwargs):
        if not raced:
            raced.append(True)
            second.add(WinningBid(
                auction_id=auction_id,
                item_id=item_id,
                bidder_id=bidder_b.bidder_id,
                winning_price=Decimal("25.00"),
                quantity_won=1,
            ))
            second.commit()
        return real_flush(*args, **kwargs)

    with patch.object(first, "flush", side_effect=racing_flush):
        result = BidLedger(first).save_bid(auction_id, item_id, bidder_a.bidder_id, Decimal("40.00"), 3)

    assert result.success is True
    rows = second.query(WinningBid).filter(
        WinningBid.auction_id == auction_id, WinningBid.item_id == item_id
    ).populate_existing().all()
    assert len(rows) == 1
    assert rows[0].bidder_id == bidder_a.bidder_id
    assert rows[0].quantity_won == 3


def test_stations_alternating_never_over_allocate(station_sessions, sample_auction, single_item, bidder_a, bidder_b):
    """Saves from either station leave exactly one winner on a single-unit item."""
    first, second = station_sessions
    auction_id, item_id = sample_auction.auction_id, single_item.item_id

    assert BidLedger(first).save_bid(auction_id, item_id, bidder_a.bidder_id, Decimal("100"), 1).success
    assert BidLedger(second).save_bid(auction_id, item_id, bidder_b.bidder_id, Decimal("110"), 1).success
    assert not BidLedger(first).save_bid(auction_id, item_id, bidder_a.bidder_id, Decimal("120"), 2).success

    status = BidLedger(first).check_inventory(item_id, auction_id)
    assert status.allocated_quantity == 1
    assert status.existing_bids[0].bidder_id == bidder_b.bidder_id
