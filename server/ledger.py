"""
Bid ledger: winning bids per (auction, item) and the item quantity they draw on.

Every mutation runs as one transaction. The item row is locked (SELECT ... FOR UPDATE)
before the current allocation is read, so two bid-entry stations writing bids for the
same item are serialized and cannot jointly over-allocate it. Locks are always taken
item first, then bid.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database import Bidder, Item, WinningBid
from .errors import LedgerError, ValidationError, NotFoundError, InsufficientInventoryError, DatastoreError
from .models import ExistingBid, InventoryStatus

logger = logging.getLogger(__name__)

# A save that loses the UNIQUE(auction_id, item_id) insert race is retried once as an overwrite
SAVE_ATTEMPTS = 2
PAIR_CONSTRAINT = "uq_winning_bids_auction_item"
# SQLite names the columns instead of the constraint
PAIR_COLUMNS = "winning_bids.auction_id, winning_bids.item_id"


def _is_pair_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return PAIR_CONSTRAINT in message or PAIR_COLUMNS in message


@dataclass
class LedgerResult:
    """Outcome of a ledger mutation. Callers check `success`, not exceptions."""

    success: bool
    errors: List[str] = field(default_factory=list)
    error: Optional[LedgerError] = None
    bid: Optional[WinningBid] = None

    @classmethod
    def ok(cls, bid: Optional[WinningBid] = None) -> "LedgerResult":
        return cls(success=True, bid=bid)

    @classmethod
    def failed(cls, error: LedgerError) -> "LedgerResult":
        return cls(success=False, errors=[error.message], error=error)


class BidLedger:
    """Saves, updates and deletes winning bids while conserving item quantity."""

    def __init__(self, db: Session):
        self.db = db

    def _allocated_quantity(self, item_id: int, auction_id: int) -> int:
        """Sum of quantity_won over every bid for the pair (0 if none)."""
        allocated = (
            self.db.query(func.coalesce(func.sum(WinningBid.quantity_won), 0))
            .filter(WinningBid.item_id == item_id, WinningBid.auction_id == auction_id)
            .scalar()
        )
        return int(allocated or 0)

    def _lock_item(self, item_id: int) -> Optional[Item]:
        return (
            self.db.query(Item)
            .filter(Item.item_id == item_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _datastore_failure(self, message: str, exc: Exception, context: str) -> LedgerResult:
        logger.error(f"{message} ({context}): {exc}", exc_info=True)
        return LedgerResult.failed(DatastoreError(message))

    def check_inventory(self, item_id: Optional[int], auction_id: Optional[int]) -> InventoryStatus:
        """
        Report how much of an item is still available within an auction.

        Raises:
            ValidationError: item_id or auction_id missing
            NotFoundError: the item does not exist
            DatastoreError: the database could not be read
        """
        if not item_id or not auction_id:
            raise ValidationError("Item ID and Auction ID required")

        try:
            item = self.db.query(Item).filter(Item.item_id == item_id).first()
            if not item:
                raise NotFoundError("Item not found")

            allocated_quantity = self._allocated_quantity(item_id, auction_id)

            rows = (
                self.db.query(WinningBid, Bidder.first_name, Bidder.last_name)
                .outerjoin(Bidder, WinningBid.bidder_id == Bidder.bidder_id)
                .filter(WinningBid.item_id == item_id, WinningBid.auction_id == auction_id)
                .order_by(WinningBid.created_at.desc(), WinningBid.bid_id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Check inventory error for item {item_id} in auction {auction_id}: {e}", exc_info=True)
            raise DatastoreError("Failed to check inventory")

        existing_bids = [
            ExistingBid(
                bid_id=bid.bid_id,
                bidder_id=bid.bidder_id,
                bidder_name=f"{first_name or ''} {last_name or ''}".strip(),
                winning_price=bid.winning_price,
                quantity_won=bid.quantity_won,
                created_at=bid.created_at,
            )
            for bid, first_name, last_name in rows
        ]

        available_quantity = item.item_quantity - allocated_quantity
        return InventoryStatus(
            total_quantity=item.item_quantity,
            allocated_quantity=allocated_quantity,
            available_quantity=available_quantity,
            existing_bids=existing_bids,
            can_add_bid=available_quantity > 0,
        )

    def _write_bid(
        self,
        auction_id: int,
        item_id: int,
        bidder_id: int,
        winning_price: Decimal,
        quantity_won: int,
    ) -> WinningBid:
        """Insert or overwrite the pair's bid. Caller owns commit/rollback."""
        item = self._lock_item(item_id)
        if item is None:
            raise NotFoundError("Item not found")

        existing = (
            self.db.query(WinningBid)
            .filter(WinningBid.auction_id == auction_id, WinningBid.item_id == item_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

        # The row being replaced gives its quantity back to the pool
        held_by_others = self._allocated_quantity(item_id, auction_id)
        if existing:
            held_by_others -= existing.quantity_won
        available = item.item_quantity - held_by_others
        if quantity_won > available:
            logger.info(
                f"Rejected bid on item {item_id} in auction {auction_id}: "
                f"requested {quantity_won}, available {available}"
            )
            raise InsufficientInventoryError(available)

        if existing:
            existing.bidder_id = bidder_id
            existing.winning_price = winning_price
            existing.quantity_won = quantity_won
            return existing

        bid = WinningBid(
            auction_id=auction_id,
            item_id=item_id,
            bidder_id=bidder_id,
            winning_price=winning_price,
            quantity_won=quantity_won,
        )
        self.db.add(bid)
        self.db.flush()
        return bid

    def save_bid(
        self,
        auction_id: Optional[int],
        item_id: Optional[int],
        bidder_id: Optional[int],
        winning_price: Optional[Decimal],
        quantity_won: int = 1,
    ) -> LedgerResult:
        """
        Record the winner of an item in an auction.

        An existing bid for the same (auction, item) is overwritten: the last save wins
        and no history is kept.
        """
        if not auction_id or not item_id or not bidder_id:
            return LedgerResult.failed(ValidationError("Missing required fields"))
        if winning_price is None or winning_price < 0:
            return LedgerResult.failed(ValidationError("Winning price is required"))
        if quantity_won is None or quantity_won < 1:
            return LedgerResult.failed(ValidationError("Quantity must be at least 1"))

        context = f"auction {auction_id}, item {item_id}, bidder {bidder_id}"
        for attempt in range(1, SAVE_ATTEMPTS + 1):
            try:
                bid = self._write_bid(auction_id, item_id, bidder_id, winning_price, quantity_won)
                self.db.commit()
                logger.info(f"Saved bid {bid.bid_id} ({context}, price {winning_price}, qty {quantity_won})")
                return LedgerResult.ok(bid)
            except LedgerError as e:
                self.db.rollback()
                return LedgerResult.failed(e)
            except IntegrityError as e:
                self.db.rollback()
                if attempt < SAVE_ATTEMPTS and _is_pair_conflict(e):
                    logger.warning(f"Concurrent insert for {context}, retrying as overwrite")
                    continue
                return self._datastore_failure("Failed to save bid", e, context)
            except SQLAlchemyError as e:
                self.db.rollback()
                return self._datastore_failure("Failed to save bid", e, context)

        return LedgerResult.failed(DatastoreError("Failed to save bid"))

    def update_bid(
        self,
        bid_id: Optional[int],
        bidder_id: Optional[int],
        winning_price: Optional[Decimal] = None,
        quantity_won: Optional[int] = None,
    ) -> LedgerResult:
        """
        Change the bidder, quantity and (optionally) price of an existing bid.

        Raising the quantity is checked against the item's remaining inventory, with the
        bid's own old quantity added back. Lowering it is always allowed.
        """
        if not bid_id:
            return LedgerResult.failed(ValidationError("Bid ID required"))
        if not bidder_id or not quantity_won:
            return LedgerResult.failed(ValidationError("Bidder ID and Quantity required"))
        if quantity_won <= 0:
            return LedgerResult.failed(ValidationError("Quantity must be a positive number"))

        try:
            bid = self.db.query(WinningBid).filter(WinningBid.bid_id == bid_id).first()
            if bid is None:
                raise NotFoundError("Bid not found")

            item = self._lock_item(bid.item_id)
            # Re-read under lock; another station may have changed or removed it
            bid = (
                self.db.query(WinningBid)
                .filter(WinningBid.bid_id == bid_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if bid is None:
                raise NotFoundError("Bid not found")

            old_quantity = bid.quantity_won
            if quantity_won > old_quantity:
                if item is None:
                    raise NotFoundError("Item not found")
                allocated = self._allocated_quantity(bid.item_id, bid.auction_id)
                available = item.item_quantity - allocated + old_quantity
                if quantity_won > available:
                    logger.info(
                        f"Rejected update of bid {bid_id}: requested {quantity_won}, available {available}"
                    )
                    raise InsufficientInventoryError(available)

            bid.bidder_id = bidder_id
            bid.quantity_won = quantity_won
            if winning_price is not None:
                bid.winning_price = winning_price
            self.db.commit()
            logger.info(f"Updated bid {bid_id} (bidder {bidder_id}, qty {old_quantity} -> {quantity_won})")
            return LedgerResult.ok(bid)
        except LedgerError as e:
            self.db.rollback()
            return LedgerResult.failed(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            return self._datastore_failure("Failed to update bid", e, f"bid {bid_id}")

    def delete_bid(self, auction_id: Optional[int], item_id: Optional[int]) -> LedgerResult:
        """Remove the pair's bid. Succeeds even when there is nothing to remove."""
        if not auction_id or not item_id:
            return LedgerResult.failed(ValidationError("Missing required fields"))

        try:
            deleted = (
                self.db.query(WinningBid)
                .filter(WinningBid.auction_id == auction_id, WinningBid.item_id == item_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
            logger.info(f"Deleted {deleted} bid(s) for auction {auction_id}, item {item_id}")
            return LedgerResult.ok()
        except SQLAlchemyError as e:
            self.db.rollback()
            return self._datastore_failure("Failed to delete bid", e, f"auction {auction_id}, item {item_id}")

    def delete_bid_by_id(self, bid_id: Optional[int]) -> LedgerResult:
        """Remove a single bid by id; an unknown id is reported as not found."""
        if not bid_id:
            return LedgerResult.failed(ValidationError("Bid ID required"))

        try:
            bid = self.db.query(WinningBid).filter(WinningBid.bid_id == bid_id).first()
            if bid is None:
                raise NotFoundError("Bid not found")
            self.db.delete(bid)
            self.db.commit()
            logger.info(f"Deleted bid {bid_id}")
            return LedgerResult.ok()
        except LedgerError as e:
            self.db.rollback()
            return LedgerResult.failed(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            return self._datastore_failure("Failed to delete bid", e, f"bid {bid_id}")
