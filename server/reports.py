"""
Auction reports, CSV exports and payment records.
"""
import csv
import io
import logging
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import and_, distinct, func
from sqlalchemy.orm import Session

from database import Auction, AuctionItem, Bidder, Item, Payment, PaymentMethod, WinningBid
from .errors import NotFoundError, ValidationError
from .models import AuctionSummary, BidderLineItem, BidderPayment, ItemResult, TopPerformer, UnsoldItem

logger = logging.getLogger(__name__)

BIDDER_PAYMENT_HEADERS = [
    "Bidder ID", "First Name", "Last Name", "Phone", "Email",
    "Address 1", "Address 2", "City", "State", "Postal Code",
    "Items Won", "Total Payment",
]
ITEM_RESULT_HEADERS = [
    "Item ID", "Item Name", "Description", "Quantity", "Winning Price",
    "Quantity Won", "Winner Name", "Bidder ID", "Phone", "Email", "Status",
]


def _money(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def generate_csv(rows: Iterable[Sequence[Any]], headers: Sequence[str]) -> str:
    """
    Render rows as CSV text with a header line.

    None becomes an empty field; fields containing a comma or quote are quoted,
    with embedded quotes doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if field is None else field for field in row])
    return buffer.getvalue()


class Reports:
    """Read-only aggregates over an auction's winning bids, plus payment entry."""

    def __init__(self, db: Session):
        self.db = db

    def _winning_bid_join(self):
        return and_(WinningBid.auction_id == AuctionItem.auction_id, WinningBid.item_id == AuctionItem.item_id)

    def auction_summary(self, auction_id: int) -> AuctionSummary:
        row = (
            self.db.query(
                Auction.auction_id,
                Auction.auction_description,
                Auction.auction_date,
                func.count(distinct(AuctionItem.item_id)),
                func.count(distinct(WinningBid.item_id)),
                func.count(distinct(WinningBid.bidder_id)),
                func.sum(WinningBid.winning_price * WinningBid.quantity_won),
                func.avg(WinningBid.winning_price),
                func.max(WinningBid.winning_price),
            )
            .select_from(Auction)
            .outerjoin(AuctionItem, AuctionItem.auction_id == Auction.auction_id)
            .outerjoin(WinningBid, self._winning_bid_join())
            .filter(Auction.auction_id == auction_id)
            .group_by(Auction.auction_id, Auction.auction_description, Auction.auction_date)
            .first()
        )
        if not row:
            raise NotFoundError("Auction not found")

        (auction_id, description, auction_date, total_items, items_sold,
         unique_bidders, total_revenue, average_price, highest_price) = row
        return AuctionSummary(
            auction_id=auction_id,
            auction_description=description,
            auction_date=auction_date,
            total_items=total_items,
            items_sold=items_sold,
            items_unsold=total_items - items_sold,
            unique_bidders=unique_bidders,
            total_revenue=_money(total_revenue),
            average_price=_money(average_price),
            highest_price=_money(highest_price),
        )

    def bidder_payments(self, auction_id: int) -> List[BidderPayment]:
        """What each winning bidder owes for the auction."""
        rows = (
            self.db.query(
                Bidder,
                func.count(WinningBid.bid_id),
                func.sum(WinningBid.winning_price * WinningBid.quantity_won),
            )
            .join(WinningBid, WinningBid.bidder_id == Bidder.bidder_id)
            .filter(WinningBid.auction_id == auction_id)
            .group_by(Bidder.bidder_id)
            .order_by(Bidder.last_name, Bidder.first_name)
            .all()
        )
        return [
            BidderPayment(
                bidder_id=b.bidder_id,
                first_name=b.first_name,
                last_name=b.last_name,
                phone=b.phone,
                email=b.email,
                address1=b.address1,
                address2=b.address2,
                city=b.city,
                state=b.state,
                postal_code=b.postal_code,
                items_won=items_won,
                total_payment=_money(total_payment) or Decimal("0"),
            )
            for b, items_won, total_payment in rows
        ]

    def bidder_details(self, auction_id: int, bidder_id: int) -> List[BidderLineItem]:
        rows = (
            self.db.query(Item, WinningBid)
            .join(WinningBid, WinningBid.item_id == Item.item_id)
            .filter(WinningBid.auction_id == auction_id, WinningBid.bidder_id == bidder_id)
            .order_by(Item.item_name)
            .all()
        )
        return [
            BidderLineItem(
                item_id=item.item_id,
                item_name=item.item_name,
                item_description=item.item_description,
                winning_price=bid.winning_price,
                quantity_won=bid.quantity_won,
                line_total=_money(bid.winning_price * bid.quantity_won),
            )
            for item, bid in rows
        ]

    def item_results(self, auction_id: int) -> List[ItemResult]:
        """Every item in the auction with its winner, marked SOLD or UNSOLD."""
        rows = (
            self.db.query(Item, WinningBid, Bidder)
            .select_from(AuctionItem)
            .join(Item, Item.item_id == AuctionItem.item_id)
            .outerjoin(WinningBid, self._winning_bid_join())
            .outerjoin(Bidder, Bidder.bidder_id == WinningBid.bidder_id)
            .filter(AuctionItem.auction_id == auction_id)
            .order_by(Item.item_id)
            .all()
        )
        return [
            ItemResult(
                item_id=item.item_id,
                item_name=item.item_name,
                item_description=item.item_description,
                item_quantity=item.item_quantity,
                winning_price=bid.winning_price if bid else None,
                quantity_won=bid.quantity_won if bid else None,
                winner_name=bidder.display_name if bidder else None,
                bidder_id=bidder.bidder_id if bidder else None,
                phone=bidder.phone if bidder else None,
                email=bidder.email if bidder else None,
                status="SOLD" if bid else "UNSOLD",
            )
            for item, bid, bidder in rows
        ]

    def unsold_items(self, auction_id: int) -> List[UnsoldItem]:
        items = (
            self.db.query(Item)
            .join(AuctionItem, AuctionItem.item_id == Item.item_id)
            .outerjoin(WinningBid, self._winning_bid_join())
            .filter(AuctionItem.auction_id == auction_id, WinningBid.bid_id.is_(None))
            .order_by(Item.item_name)
            .all()
        )
        return [
            UnsoldItem(
                item_id=i.item_id,
                item_name=i.item_name,
                item_description=i.item_description,
                item_quantity=i.item_quantity,
            )
            for i in items
        ]

    def top_performers(self, auction_id: int, limit: int = 10) -> List[TopPerformer]:
        rows = (
            self.db.query(Item.item_name, WinningBid.winning_price, Bidder)
            .select_from(WinningBid)
            .join(Item, Item.item_id == WinningBid.item_id)
            .join(Bidder, Bidder.bidder_id == WinningBid.bidder_id)
            .filter(WinningBid.auction_id == auction_id)
            .order_by(WinningBid.winning_price.desc())
            .limit(limit)
            .all()
        )
        return [
            TopPerformer(item_name=item_name, winning_price=price, winner_name=bidder.display_name)
            for item_name, price, bidder in rows
        ]

    def export_bidder_payments(self, auction_id: int) -> str:
        rows = [
            [
                p.bidder_id, p.first_name, p.last_name, p.phone, p.email,
                p.address1, p.address2, p.city, p.state, p.postal_code,
                p.items_won, p.total_payment,
            ]
            for p in self.bidder_payments(auction_id)
        ]
        return generate_csv(rows, BIDDER_PAYMENT_HEADERS)

    def export_item_results(self, auction_id: int) -> str:
        rows = [
            [
                r.item_id, r.item_name, r.item_description, r.item_quantity, r.winning_price,
                r.quantity_won, r.winner_name, r.bidder_id, r.phone, r.email, r.status,
            ]
            for r in self.item_results(auction_id)
        ]
        return generate_csv(rows, ITEM_RESULT_HEADERS)

    # Payments

    def save_payment(
        self,
        bidder_id: Optional[int],
        auction_id: Optional[int],
        amount_paid: Optional[Decimal],
        payment_method: Optional[str],
        check_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        """
        Record a payment from a bidder. Payments are not reconciled against what is owed.

        Returns:
            The new payment_id
        """
        if not bidder_id or not auction_id or not amount_paid or not payment_method:
            raise ValidationError("Bidder ID, Auction ID, Amount Paid, and Payment Method are required")
        if payment_method not in [m.value for m in PaymentMethod]:
            raise ValidationError("Payment method must be either cash or check")
        if amount_paid <= 0:
            raise ValidationError("Amount paid must be a positive number")
        if payment_method == PaymentMethod.CHECK.value and not check_number:
            raise ValidationError("Check number is required for check payments")

        if not self.db.query(Bidder.bidder_id).filter(Bidder.bidder_id == bidder_id).first():
            raise NotFoundError("Bidder not found")
        if not self.db.query(Auction.auction_id).filter(Auction.auction_id == auction_id).first():
            raise NotFoundError("Auction not found")

        payment = Payment(
            bidder_id=bidder_id,
            auction_id=auction_id,
            amount_paid=amount_paid,
            payment_method=payment_method,
            check_number=check_number if payment_method == PaymentMethod.CHECK.value else None,
            notes=notes,
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"Recorded {payment_method} payment {payment.payment_id} of {amount_paid} from bidder {bidder_id}")
        return payment.payment_id

    def list_payments(self, auction_id: int, bidder_id: Optional[int] = None) -> List[Payment]:
        query = self.db.query(Payment).filter(Payment.auction_id == auction_id)
        if bidder_id:
            query = query.filter(Payment.bidder_id == bidder_id)
        return query.order_by(Payment.created_at, Payment.payment_id).all()
