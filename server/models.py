from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List


class AuthRequest(BaseModel):
    username: str = "admin"
    password: str


class AuthResponse(BaseModel):
    token: str


# Bid ledger

class ExistingBid(BaseModel):
    bid_id: int
    bidder_id: int
    bidder_name: str
    winning_price: Decimal
    quantity_won: int
    created_at: datetime


class InventoryStatus(BaseModel):
    total_quantity: int
    allocated_quantity: int
    available_quantity: int
    existing_bids: List[ExistingBid]
    can_add_bid: bool


class SaveBidRequest(BaseModel):
    auction_id: Optional[int] = None
    item_id: Optional[int] = None
    bidder_id: Optional[int] = None
    winning_price: Optional[Decimal] = None
    quantity_won: int = 1
    action: str = "save"


class UpdateBidRequest(BaseModel):
    action: Optional[str] = None
    bid_id: Optional[int] = None
    bidder_id: Optional[int] = None
    winning_price: Optional[Decimal] = None
    quantity_won: Optional[int] = None


class AuctionStats(BaseModel):
    total_revenue: Decimal = Decimal("0")
    bid_count: int = 0


class SaveBidResponse(BaseModel):
    success: bool
    message: str
    stats: AuctionStats


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class ItemValidationResponse(BaseModel):
    valid: bool


# Catalog

class BidderRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class BidderResponse(BaseModel):
    bidder_id: int
    first_name: str
    last_name: str
    phone: Optional[str]
    email: Optional[str]
    address1: Optional[str]
    address2: Optional[str]
    city: Optional[str]
    state: Optional[str]
    postal_code: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class BidderListResponse(BaseModel):
    total: int
    bidders: List[BidderResponse]


class ItemRequest(BaseModel):
    item_name: Optional[str] = None
    item_description: Optional[str] = None
    item_quantity: Optional[int] = None


class ItemResponse(BaseModel):
    item_id: int
    item_name: str
    item_description: Optional[str]
    item_quantity: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ItemListResponse(BaseModel):
    total: int
    items: List[ItemResponse]


class AuctionRequest(BaseModel):
    auction_date: Optional[str] = None
    auction_description: Optional[str] = None
    status: Optional[str] = None


class AuctionStatusRequest(BaseModel):
    status: str


class AuctionResponse(BaseModel):
    auction_id: int
    auction_date: date
    auction_description: str
    status: str
    created_at: datetime
    item_count: int = 0
    bid_count: int = 0


class AuctionListResponse(BaseModel):
    total: int
    auctions: List[AuctionResponse]


class BatchAddItemsRequest(BaseModel):
    item_ids: List[int]


class BatchAddItemResult(BaseModel):
    item_id: int
    success: bool
    error_message: Optional[str] = None


class BatchAddItemsResponse(BaseModel):
    results: List[BatchAddItemResult]


class BidEntryItem(BaseModel):
    """An auction item together with whoever currently holds it."""

    item_id: int
    item_name: str
    item_description: Optional[str]
    item_quantity: int
    bid_id: Optional[int] = None
    bidder_id: Optional[int] = None
    winner_name: Optional[str] = None
    winning_price: Optional[Decimal] = None
    quantity_won: int = 0
    winner_count: int = 0


class LookupResult(BaseModel):
    id: int
    name: str
    display: str
    phone: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[int] = None


class LookupResponse(BaseModel):
    results: List[LookupResult]


# Payments and reports

class PaymentRequest(BaseModel):
    bidder_id: Optional[int] = None
    auction_id: Optional[int] = None
    amount_paid: Optional[Decimal] = None
    payment_method: Optional[str] = None
    check_number: Optional[str] = None
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    payment_id: int
    bidder_id: int
    auction_id: int
    amount_paid: Decimal
    payment_method: str
    check_number: Optional[str]
    notes: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class SavePaymentResponse(BaseModel):
    success: bool = True
    payment_id: int
    message: str


class AuctionSummary(BaseModel):
    auction_id: int
    auction_description: str
    auction_date: date
    total_items: int
    items_sold: int
    items_unsold: int
    unique_bidders: int
    total_revenue: Optional[Decimal]
    average_price: Optional[Decimal]
    highest_price: Optional[Decimal]


class BidderPayment(BaseModel):
    bidder_id: int
    first_name: str
    last_name: str
    phone: Optional[str]
    email: Optional[str]
    address1: Optional[str]
    address2: Optional[str]
    city: Optional[str]
    state: Optional[str]
    postal_code: Optional[str]
    items_won: int
    total_payment: Decimal


class BidderLineItem(BaseModel):
    item_id: int
    item_name: str
    item_description: Optional[str]
    winning_price: Decimal
    quantity_won: int
    line_total: Decimal


class ItemResult(BaseModel):
    item_id: int
    item_name: str
    item_description: Optional[str]
    item_quantity: int
    winning_price: Optional[Decimal]
    quantity_won: Optional[int]
    winner_name: Optional[str]
    bidder_id: Optional[int]
    phone: Optional[str]
    email: Optional[str]
    status: str


class UnsoldItem(BaseModel):
    item_id: int
    item_name: str
    item_description: Optional[str]
    item_quantity: int


class TopPerformer(BaseModel):
    item_name: str
    winning_price: Decimal
    winner_name: str
