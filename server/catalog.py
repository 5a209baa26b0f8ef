"""
Catalog store: bidders, items, auctions and which items are enrolled in which auction.

Operations raise ValidationError / NotFoundError for expected failures; the API turns
them into JSON error responses.
"""
import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import String, case, cast, func, or_
from sqlalchemy.orm import Session

from database import Auction, AuctionItem, AuctionStatus, Bidder, Item, WinningBid
from .errors import NotFoundError, ValidationError
from .models import AuctionResponse, AuctionStats, BatchAddItemResult, BidEntryItem, LookupResult

logger = logging.getLogger(__name__)

LOOKUP_LIMIT = 10
DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%B %d, %Y")

BIDDER_FIELDS = ("first_name", "last_name", "phone", "email", "address1", "address2", "city", "state", "postal_code")
ITEM_FIELDS = ("item_name", "item_description", "item_quantity")


def _require(data: Dict[str, Any], fields: List[str]):
    missing = [f"{field.replace('_', ' ').capitalize()} is required" for field in fields if not data.get(field)]
    if missing:
        raise ValidationError(", ".join(missing))


def clean_phone(phone: Optional[str]) -> Optional[str]:
    """Keep only the digits of a phone number."""
    if not phone:
        return phone
    return re.sub(r"\D", "", phone)


def format_phone(phone: Optional[str]) -> str:
    """Format a 10-digit phone number as (555) 123-4567; anything else is returned as-is."""
    if not phone:
        return ""
    digits = clean_phone(phone)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return phone


def parse_auction_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(str(value).strip(), fmt).date()
        except ValueError:
            continue
    raise ValidationError("Invalid date format")


def _validate_status(status: str):
    if status not in [s.value for s in AuctionStatus]:
        raise ValidationError("Invalid status")


class Catalog:
    """Bidder, item and auction records."""

    def __init__(self, db: Session):
        self.db = db

    # Bidders

    def _bidder_search(self, query, search: str, match_id: bool = True):
        if not search:
            return query
        pattern = f"%{search}%"
        conditions = [
            Bidder.first_name.like(pattern),
            Bidder.last_name.like(pattern),
            (Bidder.first_name + " " + Bidder.last_name).like(pattern),
        ]
        if match_id and search.isdigit():
            conditions.append(Bidder.bidder_id == int(search))
        return query.filter(or_(*conditions))

    def list_bidders(self, search: str = "", limit: int = 50, offset: int = 0) -> List[Bidder]:
        query = self._bidder_search(self.db.query(Bidder), search)
        return query.order_by(Bidder.last_name, Bidder.first_name).limit(limit).offset(offset).all()

    def count_bidders(self, search: str = "") -> int:
        return self._bidder_search(self.db.query(Bidder), search, match_id=False).count()

    def get_bidder(self, bidder_id: int) -> Bidder:
        bidder = self.db.query(Bidder).filter(Bidder.bidder_id == bidder_id).first()
        if not bidder:
            raise NotFoundError("Bidder not found")
        return bidder

    def search_bidders(self, term: str) -> List[LookupResult]:
        """Typeahead lookup by name or exact bidder number."""
        bidders = (
            self._bidder_search(self.db.query(Bidder), term)
            .order_by(Bidder.last_name, Bidder.first_name)
            .limit(LOOKUP_LIMIT)
            .all()
        )
        return [
            LookupResult(
                id=b.bidder_id,
                name=b.display_name,
                phone=format_phone(b.phone),
                email=b.email,
                display=f"{b.display_name} ({b.bidder_id})",
            )
            for b in bidders
        ]

    def create_bidder(self, data: Dict[str, Any]) -> Bidder:
        _require(data, ["first_name", "last_name"])
        values = {k: data.get(k) for k in BIDDER_FIELDS if k in data}
        values["phone"] = clean_phone(values.get("phone"))
        bidder = Bidder(**values)
        self.db.add(bidder)
        self.db.commit()
        self.db.refresh(bidder)
        logger.info(f"Created bidder {bidder.bidder_id}")
        return bidder

    def update_bidder(self, bidder_id: int, data: Dict[str, Any]) -> Bidder:
        _require(data, ["first_name", "last_name"])
        bidder = self.get_bidder(bidder_id)
        for key in BIDDER_FIELDS:
            if key in data:
                setattr(bidder, key, clean_phone(data[key]) if key == "phone" else data[key])
        self.db.commit()
        self.db.refresh(bidder)
        return bidder

    def delete_bidder(self, bidder_id: int):
        bidder = self.get_bidder(bidder_id)
        bid_count = self.db.query(WinningBid).filter(WinningBid.bidder_id == bidder_id).count()
        if bid_count > 0:
            raise ValidationError("Cannot delete bidder with existing bids")
        self.db.delete(bidder)
        self.db.commit()
        logger.info(f"Deleted bidder {bidder_id}")

    # Items

    def _item_search(self, query, search: str, match_id: bool = True):
        if not search:
            return query
        pattern = f"%{search}%"
        conditions = [Item.item_name.like(pattern), Item.item_description.like(pattern)]
        if match_id and search.isdigit():
            conditions.append(Item.item_id == int(search))
        return query.filter(or_(*conditions))

    def list_items(self, search: str = "", limit: int = 50, offset: int = 0) -> List[Item]:
        query = self._item_search(self.db.query(Item), search)
        return query.order_by(Item.item_name).limit(limit).offset(offset).all()

    def count_items(self, search: str = "") -> int:
        return self._item_search(self.db.query(Item), search, match_id=False).count()

    def get_item(self, item_id: int) -> Item:
        item = self.db.query(Item).filter(Item.item_id == item_id).first()
        if not item:
            raise NotFoundError("Item not found")
        return item

    def search_items(self, term: str, auction_id: Optional[int]) -> List[LookupResult]:
        """
        Typeahead lookup restricted to the items enrolled in one auction.

        Numeric terms rank an exact item number first, then item numbers starting with
        the term ("1" matches 16, 17, 100), then name/description matches.
        """
        if not auction_id:
            raise ValidationError("Auction ID required for item search")

        pattern = f"%{term}%"
        query = (
            self.db.query(Item)
            .join(AuctionItem, AuctionItem.item_id == Item.item_id)
            .filter(AuctionItem.auction_id == auction_id)
        )
        if term.isdigit():
            id_prefix = cast(Item.item_id, String).like(f"{term}%")
            query = query.filter(
                or_(
                    Item.item_name.like(pattern),
                    Item.item_description.like(pattern),
                    Item.item_id == int(term),
                    id_prefix,
                )
            ).order_by(
                case((Item.item_id == int(term), 1), (id_prefix, 2), else_=3),
                Item.item_name,
            )
        else:
            query = query.filter(
                or_(Item.item_name.like(pattern), Item.item_description.like(pattern))
            ).order_by(Item.item_name)

        return [
            LookupResult(
                id=i.item_id,
                name=i.item_name,
                description=i.item_description or "",
                quantity=i.item_quantity,
                display=f"{i.item_name} (#{i.item_id})",
            )
            for i in query.limit(LOOKUP_LIMIT).all()
        ]

    def _item_values(self, data: Dict[str, Any]) -> Dict[str, Any]:
        values = {k: data.get(k) for k in ITEM_FIELDS if k in data}
        # Every item has at least one unit
        if "item_quantity" in values and (not values["item_quantity"] or values["item_quantity"] < 1):
            values["item_quantity"] = 1
        return values

    def create_item(self, data: Dict[str, Any]) -> Item:
        _require(data, ["item_name"])
        values = self._item_values(data)
        values.setdefault("item_quantity", 1)
        item = Item(**values)
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Created item {item.item_id} (qty {item.item_quantity})")
        return item

    def update_item(self, item_id: int, data: Dict[str, Any]) -> Item:
        _require(data, ["item_name"])
        item = self.get_item(item_id)
        for key, value in self._item_values(data).items():
            setattr(item, key, value)
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, item_id: int):
        item = self.get_item(item_id)
        enrolled = self.db.query(AuctionItem).filter(AuctionItem.item_id == item_id).count()
        if enrolled > 0:
            raise ValidationError("Cannot delete item that is part of auctions")
        self.db.delete(item)
        self.db.commit()
        logger.info(f"Deleted item {item_id}")

    # Auctions

    def _auction_counts(self):
        item_count = (
            self.db.query(func.count(AuctionItem.auction_item_id))
            .filter(AuctionItem.auction_id == Auction.auction_id)
            .correlate(Auction)
            .scalar_subquery()
        )
        bid_count = (
            self.db.query(func.count(WinningBid.bid_id))
            .filter(WinningBid.auction_id == Auction.auction_id)
            .correlate(Auction)
            .scalar_subquery()
        )
        return item_count, bid_count

    @staticmethod
    def _auction_response(auction: Auction, item_count: int, bid_count: int) -> AuctionResponse:
        return AuctionResponse(
            auction_id=auction.auction_id,
            auction_date=auction.auction_date,
            auction_description=auction.auction_description,
            status=auction.status,
            created_at=auction.created_at,
            item_count=item_count or 0,
            bid_count=bid_count or 0,
        )

    def list_auctions(self, limit: int = 50, offset: int = 0) -> List[AuctionResponse]:
        item_count, bid_count = self._auction_counts()
        rows = (
            self.db.query(Auction, item_count, bid_count)
            .order_by(Auction.auction_date.desc(), Auction.auction_id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [self._auction_response(*row) for row in rows]

    def count_auctions(self) -> int:
        return self.db.query(Auction).count()

    def get_auction(self, auction_id: int) -> Auction:
        auction = self.db.query(Auction).filter(Auction.auction_id == auction_id).first()
        if not auction:
            raise NotFoundError("Auction not found")
        return auction

    def get_auction_with_counts(self, auction_id: int) -> AuctionResponse:
        item_count, bid_count = self._auction_counts()
        row = self.db.query(Auction, item_count, bid_count).filter(Auction.auction_id == auction_id).first()
        if not row:
            raise NotFoundError("Auction not found")
        return self._auction_response(*row)

    def get_auction_stats(self, auction_id: int) -> AuctionStats:
        """Revenue and bid count shown after each bid entry."""
        bid_count, total_revenue = (
            self.db.query(
                func.count(WinningBid.bid_id),
                func.sum(WinningBid.winning_price * WinningBid.quantity_won),
            )
            .filter(WinningBid.auction_id == auction_id)
            .one()
        )
        return AuctionStats(total_revenue=Decimal(str(total_revenue or 0)), bid_count=bid_count or 0)

    def create_auction(self, data: Dict[str, Any]) -> Auction:
        _require(data, ["auction_date", "auction_description"])
        status = data.get("status") or AuctionStatus.PLANNING.value
        _validate_status(status)
        auction = Auction(
            auction_date=parse_auction_date(data["auction_date"]),
            auction_description=data["auction_description"],
            status=status,
        )
        self.db.add(auction)
        self.db.commit()
        self.db.refresh(auction)
        logger.info(f"Created auction {auction.auction_id} on {auction.auction_date}")
        return auction

    def update_auction(self, auction_id: int, data: Dict[str, Any]) -> Auction:
        """Only the date, description and status of an auction can change."""
        _require(data, ["auction_date", "auction_description"])
        auction_date = parse_auction_date(data["auction_date"])
        if data.get("status"):
            _validate_status(data["status"])

        auction = self.get_auction(auction_id)
        auction.auction_date = auction_date
        auction.auction_description = data["auction_description"]
        if data.get("status"):
            auction.status = data["status"]
        self.db.commit()
        self.db.refresh(auction)
        return auction

    def update_auction_status(self, auction_id: int, status: str) -> Auction:
        _validate_status(status)
        auction = self.get_auction(auction_id)
        auction.status = status
        self.db.commit()
        self.db.refresh(auction)
        logger.info(f"Auction {auction_id} is now {status}")
        return auction

    def delete_auction(self, auction_id: int):
        auction = self.get_auction(auction_id)
        bid_count = self.db.query(WinningBid).filter(WinningBid.auction_id == auction_id).count()
        if bid_count > 0:
            raise ValidationError("Cannot delete auction with existing bids")
        self.db.query(AuctionItem).filter(AuctionItem.auction_id == auction_id).delete(synchronize_session=False)
        self.db.delete(auction)
        self.db.commit()
        logger.info(f"Deleted auction {auction_id}")

    # Auction items

    def item_in_auction(self, item_id: int, auction_id: int) -> bool:
        return (
            self.db.query(AuctionItem.auction_item_id)
            .filter(AuctionItem.auction_id == auction_id, AuctionItem.item_id == item_id)
            .first()
            is not None
        )

    def add_item_to_auction(self, item_id: int, auction_id: int) -> AuctionItem:
        self.get_item(item_id)
        self.get_auction(auction_id)
        if self.item_in_auction(item_id, auction_id):
            raise ValidationError(f"Item #{item_id} is already part of this auction")

        association = AuctionItem(auction_id=auction_id, item_id=item_id)
        self.db.add(association)
        self.db.commit()
        self.db.refresh(association)
        return association

    def add_items_to_auction(self, auction_id: int, item_ids: List[int]) -> List[BatchAddItemResult]:
        """Enroll several items at once, reporting each item's outcome separately."""
        self.get_auction(auction_id)
        results = []
        for item_id in item_ids:
            try:
                self.add_item_to_auction(item_id, auction_id)
                results.append(BatchAddItemResult(item_id=item_id, success=True))
            except (ValidationError, NotFoundError) as e:
                self.db.rollback()
                results.append(BatchAddItemResult(item_id=item_id, success=False, error_message=e.message))
        added = sum(1 for r in results if r.success)
        logger.info(f"Batch enrolled {added}/{len(item_ids)} items in auction {auction_id}")
        return results

    def remove_item_from_auction(self, item_id: int, auction_id: int):
        bid_count = (
            self.db.query(WinningBid)
            .filter(WinningBid.item_id == item_id, WinningBid.auction_id == auction_id)
            .count()
        )
        if bid_count > 0:
            raise ValidationError("Cannot remove item with winning bids")
        self.db.query(AuctionItem).filter(
            AuctionItem.item_id == item_id, AuctionItem.auction_id == auction_id
        ).delete(synchronize_session=False)
        self.db.commit()

    def items_for_auction(self, auction_id: int) -> List[Item]:
        return (
            self.db.query(Item)
            .join(AuctionItem, AuctionItem.item_id == Item.item_id)
            .filter(AuctionItem.auction_id == auction_id)
            .order_by(Item.item_name)
            .all()
        )

    def items_available_for_auction(self) -> List[Item]:
        """Items not enrolled in any auction yet."""
        return (
            self.db.query(Item)
            .outerjoin(AuctionItem, AuctionItem.item_id == Item.item_id)
            .filter(AuctionItem.item_id.is_(None))
            .order_by(Item.item_name)
            .all()
        )

    def items_for_bid_entry(self, auction_id: int) -> List[BidEntryItem]:
        """Every enrolled item with its current winner, in item number order."""
        rows = (
            self.db.query(Item, WinningBid, Bidder)
            .join(AuctionItem, AuctionItem.item_id == Item.item_id)
            .outerjoin(
                WinningBid,
                (WinningBid.item_id == AuctionItem.item_id) & (WinningBid.auction_id == AuctionItem.auction_id),
            )
            .outerjoin(Bidder, Bidder.bidder_id == WinningBid.bidder_id)
            .filter(AuctionItem.auction_id == auction_id)
            .order_by(Item.item_id, WinningBid.created_at)
            .all()
        )

        entries: Dict[int, BidEntryItem] = {}
        for item, bid, bidder in rows:
            entry = entries.get(item.item_id)
            if entry is None:
                entry = BidEntryItem(
                    item_id=item.item_id,
                    item_name=item.item_name,
                    item_description=item.item_description,
                    item_quantity=item.item_quantity,
                )
                entries[item.item_id] = entry
            if bid is None:
                continue
            entry.winner_count += 1
            entry.quantity_won += bid.quantity_won
            if entry.winner_count == 1:
                entry.bid_id = bid.bid_id
                entry.bidder_id = bid.bidder_id
                entry.winning_price = bid.winning_price
                entry.winner_name = bidder.display_name if bidder else ""
            else:
                entry.winner_name = f"{entry.winner_count} Winners"
        return list(entries.values())
