from .models import Bidder, Auction, Item, AuctionItem, WinningBid, Payment, AuctionStatus, PaymentMethod
from .session import init_db, get_db, SessionLocal

__all__ = [
    "Bidder", "Auction", "Item", "AuctionItem", "WinningBid", "Payment",
    "AuctionStatus", "PaymentMethod", "init_db", "get_db", "SessionLocal",
]
