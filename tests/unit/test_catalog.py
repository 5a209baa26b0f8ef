import pytest
from datetime import date
from decimal import Decimal
from database.models import Auction, AuctionItem, Bidder, Item
from server.catalog import Catalog, clean_phone, format_phone, parse_auction_date
from server.errors import NotFoundError, ValidationError


def test_clean_and_format_phone():
    """Test phone normalization and display."""
    assert clean_phone("(555) 123-4567") == "5551234567"
    assert clean_phone(None) is None
    assert format_phone("5551234567") == "(555) 123-4567"
    assert format_phone("12345") == "12345"
    assert format_phone(None) == ""


def test_parse_auction_date():
    """Test the accepted auction date formats."""
    assert parse_auction_date("2025-11-15") == date(2025, 11, 15)
    assert parse_auction_date("11/15/2025") == date(2025, 11, 15)
    assert parse_auction_date("November 15, 2025") == date(2025, 11, 15)
    assert parse_auction_date(date(2025, 1, 2)) == date(2025, 1, 2)
    with pytest.raises(ValidationError, match="Invalid date format"):
        parse_auction_date("next Tuesday")


class TestBidders:
    def test_create_bidder_cleans_phone(self, db_session):
        bidder = Catalog(db_session).create_bidder(
            {"first_name": "Carol", "last_name": "Chen", "phone": "(555) 987-6543"}
        )
        assert bidder.bidder_id is not None
        assert bidder.phone == "5559876543"

    def test_create_bidder_requires_names(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            Catalog(db_session).create_bidder({"email": "x@example.com"})
        assert exc_info.value.message == "First name is required, Last name is required"

    def test_update_bidder(self, db_session, bidder_a):
        bidder = Catalog(db_session).update_bidder(
            bidder_a.bidder_id, {"first_name": "Alicia", "last_name": "Anderson", "city": "Springfield"}
        )
        assert bidder.first_name == "Alicia"
        assert bidder.city == "Springfield"
        assert bidder.phone == "5551234567"

    def test_get_unknown_bidder(self, db_session):
        with pytest.raises(NotFoundError, match="Bidder not found"):
            Catalog(db_session).get_bidder(999)

    def test_delete_bidder_with_bids_is_refused(self, db_session, sample_bid, bidder_a):
        with pytest.raises(ValidationError, match="Cannot delete bidder with existing bids"):
            Catalog(db_session).delete_bidder(bidder_a.bidder_id)

    def test_delete_bidder(self, db_session, bidder_b):
        bidder_id = bidder_b.bidder_id
        Catalog(db_session).delete_bidder(bidder_id)
        assert db_session.query(Bidder).filter(Bidder.bidder_id == bidder_id).first() is None

    def test_list_and_count_with_search(self, db_session, bidder_a, bidder_b):
        catalog = Catalog(db_session)
        assert [b.last_name for b in catalog.list_bidders()] == ["Anderson", "Baker"]
        assert [b.first_name for b in catalog.list_bidders("bob")] == ["Bob"]
        assert catalog.count_bidders("Anderson") == 1
        assert catalog.count_bidders() == 2

    def test_search_bidders_by_name_and_number(self, db_session, bidder_a, bidder_b):
        catalog = Catalog(db_session)
        results = catalog.search_bidders("Alice")
        assert len(results) == 1
        assert results[0].display == f"Alice Anderson ({bidder_a.bidder_id})"
        assert results[0].phone == "(555) 123-4567"

        results = catalog.search_bidders(str(bidder_b.bidder_id))
        assert bidder_b.bidder_id in [r.id for r in results]


class TestItems:
    def test_create_item_defaults_quantity(self, db_session):
        catalog = Catalog(db_session)
        assert catalog.create_item({"item_name": "Pie"}).item_quantity == 1
        assert catalog.create_item({"item_name": "Cake", "item_quantity": 0}).item_quantity == 1
        assert catalog.create_item({"item_name": "Cookies", "item_quantity": 24}).item_quantity == 24

    def test_create_item_requires_name(self, db_session):
        with pytest.raises(ValidationError, match="Item name is required"):
            Catalog(db_session).create_item({"item_quantity": 3})

    def test_update_item_keeps_quantity_when_not_given(self, db_session, sample_item):
        item = Catalog(db_session).update_item(sample_item.item_id, {"item_name": "Wine Crate"})
        assert item.item_name == "Wine Crate"
        assert item.item_quantity == 10

    def test_delete_enrolled_item_is_refused(self, db_session, sample_item):
        with pytest.raises(ValidationError, match="Cannot delete item that is part of auctions"):
            Catalog(db_session).delete_item(sample_item.item_id)

    def test_search_items_requires_auction(self, db_session, sample_item):
        with pytest.raises(ValidationError, match="Auction ID required for item search"):
            Catalog(db_session).search_items("Wine", None)

    def test_search_items_only_in_auction(self, db_session, sample_auction, sample_item):
        db_session.add(Item(item_name="Wine Glasses", item_quantity=6))
        db_session.commit()

        results = Catalog(db_session).search_items("Wine", sample_auction.auction_id)
        assert [r.name for r in results] == ["Wine Basket"]
        assert results[0].display == f"Wine Basket (#{sample_item.item_id})"
        assert results[0].quantity == 10

    def test_search_items_numeric_ranking(self, db_session, sample_auction):
        """Exact item number first, then numbers with that prefix."""
        catalog = Catalog(db_session)
        for n in range(12):
            item = Item(item_name=f"Lot {chr(ord('a') + n)}", item_quantity=1)
            db_session.add(item)
            db_session.commit()
            db_session.add(AuctionItem(auction_id=sample_auction.auction_id, item_id=item.item_id))
            db_session.commit()

        results = catalog.search_items("1", sample_auction.auction_id)
        ids = [r.id for r in results]
        assert ids[0] == 1
        assert set(ids[1:3]) == {10, 11}
        assert all(str(i).startswith("1") for i in ids)


class TestAuctions:
    def test_create_auction(self, db_session):
        auction = Catalog(db_session).create_auction(
            {"auction_date": "12/06/2025", "auction_description": "Holiday Auction"}
        )
        assert auction.auction_date == date(2025, 12, 6)
        assert auction.status == "planning"

    def test_create_auction_invalid_status(self, db_session):
        with pytest.raises(ValidationError, match="Invalid status"):
            Catalog(db_session).create_auction(
                {"auction_date": "2025-12-06", "auction_description": "Holiday Auction", "status": "closed"}
            )

    def test_update_auction_status(self, db_session, sample_auction):
        auction = Catalog(db_session).update_auction_status(sample_auction.auction_id, "completed")
        assert auction.status == "completed"

    def test_auction_counts(self, db_session, sample_auction, sample_item, single_item, sample_bid):
        catalog = Catalog(db_session)
        auction = catalog.get_auction_with_counts(sample_auction.auction_id)
        assert auction.item_count == 2
        assert auction.bid_count == 1

        listed = catalog.list_auctions()
        assert listed[0].auction_id == sample_auction.auction_id
        assert listed[0].item_count == 2

    def test_auction_stats(self, db_session, sample_auction, sample_bid):
        stats = Catalog(db_session).get_auction_stats(sample_auction.auction_id)
        assert stats.bid_count == 1
        assert stats.total_revenue == Decimal("200")

    def test_auction_stats_empty(self, db_session, sample_auction):
        stats = Catalog(db_session).get_auction_stats(sample_auction.auction_id)
        assert stats.bid_count == 0
        assert stats.total_revenue == Decimal("0")

    def test_delete_auction_with_bids_is_refused(self, db_session, sample_auction, sample_bid):
        with pytest.raises(ValidationError, match="Cannot delete auction with existing bids"):
            Catalog(db_session).delete_auction(sample_auction.auction_id)

    def test_delete_auction_removes_enrollments(self, db_session, sample_auction, sample_item):
        auction_id = sample_auction.auction_id
        Catalog(db_session).delete_auction(auction_id)
        assert db_session.query(Auction).filter(Auction.auction_id == auction_id).first() is None
        assert db_session.query(AuctionItem).filter(AuctionItem.auction_id == auction_id).count() == 0


class TestAuctionItems:
    def test_item_in_auction(self, db_session, sample_auction, sample_item):
        catalog = Catalog(db_session)
        assert catalog.item_in_auction(sample_item.item_id, sample_auction.auction_id) is True
        assert catalog.item_in_auction(999, sample_auction.auction_id) is False

    def test_add_items_reports_each_item(self, db_session, sample_auction, sample_item):
        new_item = Item(item_name="Golf Lesson", item_quantity=2)
        db_session.add(new_item)
        db_session.commit()

        results = Catalog(db_session).add_items_to_auction(
            sample_auction.auction_id, [new_item.item_id, sample_item.item_id, 999]
        )
        assert [r.success for r in results] == [True, False, False]
        assert results[1].error_message == f"Item #{sample_item.item_id} is already part of this auction"
        assert results[2].error_message == "Item not found"

    def test_add_items_to_unknown_auction(self, db_session, sample_item):
        with pytest.raises(NotFoundError, match="Auction not found"):
            Catalog(db_session).add_items_to_auction(999, [sample_item.item_id])

    def test_remove_item_with_bid_is_refused(self, db_session, sample_auction, sample_item, sample_bid):
        with pytest.raises(ValidationError, match="Cannot remove item with winning bids"):
            Catalog(db_session).remove_item_from_auction(sample_item.item_id, sample_auction.auction_id)

    def test_remove_item(self, db_session, sample_auction, single_item):
        catalog = Catalog(db_session)
        catalog.remove_item_from_auction(single_item.item_id, sample_auction.auction_id)
        assert catalog.item_in_auction(single_item.item_id, sample_auction.auction_id) is False
        assert [i.item_id for i in catalog.items_available_for_auction()] == [single_item.item_id]

    def test_items_for_auction(self, db_session, sample_auction, sample_item, single_item):
        items = Catalog(db_session).items_for_auction(sample_auction.auction_id)
        assert [i.item_name for i in items] == ["Signed Guitar", "Wine Basket"]

    def test_items_for_bid_entry(self, db_session, sample_auction, sample_item, single_item, sample_bid):
        entries = Catalog(db_session).items_for_bid_entry(sample_auction.auction_id)
        assert [e.item_id for e in entries] == sorted([sample_item.item_id, single_item.item_id])

        by_id = {e.item_id: e for e in entries}
        sold = by_id[sample_item.item_id]
        assert sold.bid_id == sample_bid.bid_id
        assert sold.winner_name == "Alice Anderson"
        assert sold.winning_price == Decimal("50.00")
        assert sold.quantity_won == 4
        assert sold.winner_count == 1

        unsold = by_id[single_item.item_id]
        assert unsold.bid_id is None
        assert unsold.winner_count == 0
