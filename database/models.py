from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from enum import Enum

Base = declarative_base()


class AuctionStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"


class Bidder(Base):
    __tablename__ = "bidders"

    bidder_id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    address1 = Column(String(255), nullable=True)
    address2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    postal_code = Column(String(20), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    winning_bids = relationship("WinningBid", back_populates="bidder")

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Auction(Base):
    __tablename__ = "auctions"

    auction_id = Column(Integer, primary_key=True, index=True)
    auction_date = Column(Date, nullable=False, index=True)
    auction_description = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=AuctionStatus.PLANNING.value, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    auction_items = relationship("AuctionItem", back_populates="auction")
    winning_bids = relationship("WinningBid", back_populates="auction")


class Item(Base):
    __tablename__ = "items"

    item_id = Column(Integer, primary_key=True, index=True)
    item_name = Column(String(255), nullable=False, index=True)
    item_description = Column(Text, nullable=True)
    item_quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    auction_items = relationship("AuctionItem", back_populates="item")


class AuctionItem(Base):
    __tablename__ = "auction_items"
    __table_args__ = (UniqueConstraint("auction_id", "item_id", name="uq_auction_items_auction_item"),)

    auction_item_id = Column(Integer, primary_key=True, index=True)
    auction_id = Column(Integer, ForeignKey("auctions.auction_id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.item_id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    auction = relationship("Auction", back_populates="auction_items")
    item = relationship("Item", back_populates="auction_items")


class WinningBid(Base):
    __tablename__ = "winning_bids"
    # One winner per item per auction; a later save overwrites this row
    __table_args__ = (UniqueConstraint("auction_id", "item_id", name="uq_winning_bids_auction_item"),)

    bid_id = Column(Integer, primary_key=True, index=True)
    auction_id = Column(Integer, ForeignKey("auctions.auction_id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.item_id"), nullable=False, index=True)
    bidder_id = Column(Integer, ForeignKey("bidders.bidder_id"), nullable=False, index=True)
    winning_price = Column(Numeric(10, 2), nullable=False)
    quantity_won = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    auction = relationship("Auction", back_populates="winning_bids")
    bidder = relationship("Bidder", back_populates="winning_bids")
    item = relationship("Item")


class Payment(Base):
    __tablename__ = "payments"

    payment_id = Column(Integer, primary_key=True, index=True)
    bidder_id = Column(Integer, ForeignKey("bidders.bidder_id"), nullable=False, index=True)
    auction_id = Column(Integer, ForeignKey("auctions.auction_id"), nullable=False, index=True)
    amount_paid = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(10), nullable=False)
    check_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    bidder = relationship("Bidder")
