from fastapi import FastAPI, Depends, HTTPException, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional, List
import hmac
import jwt
import os
from dotenv import load_dotenv
from database import get_db
from .models import (
    AuthRequest, AuthResponse, InventoryStatus, SaveBidRequest, SaveBidResponse, UpdateBidRequest,
    SuccessResponse, ItemValidationResponse, BidderRequest, BidderResponse, BidderListResponse,
    ItemRequest, ItemResponse, ItemListResponse, AuctionRequest, AuctionStatusRequest, AuctionResponse,
    AuctionListResponse, AuctionStats, BatchAddItemsRequest, BatchAddItemsResponse, BidEntryItem,
    LookupResponse, PaymentRequest, PaymentResponse, SavePaymentResponse, AuctionSummary, BidderPayment,
    BidderLineItem, ItemResult, UnsoldItem, TopPerformer,
)
from .catalog import Catalog
from .errors import LedgerError, ValidationError
from .ledger import BidLedger
from .reports import Reports
import logging

# Load environment variables before reading settings
load_dotenv()

logger = logging.getLogger(__name__)

app = FastAPI(title="Silent Auction Manager")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "auction123")
TOKEN_TTL_DAYS = int(os.getenv("TOKEN_TTL_DAYS", "1"))


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        field = str(err["loc"][-1]) if err.get("loc") else ""
        if field and field not in fields:
            fields.append(field)
    message = f"Invalid value for {', '.join(fields)}" if fields else "Invalid request"
    logger.info(f"Rejected malformed {request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(SQLAlchemyError)
async def datastore_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Database error occurred"})


def verify_token(authorization: str = Header(None)) -> str:
    """Verify the bearer token and return the operator it was issued to."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")

    token = authorization.split(" ")[1]
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
        return payload.get("sub", "")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/auth", response_model=AuthResponse)
def auth(request: AuthRequest):
    """Check the shared admin password and return an API token."""
    if not hmac.compare_digest(request.password.encode(), ADMIN_PASSWORD.encode()):
        logger.warning(f"Failed login attempt for {request.username}")
        raise HTTPException(status_code=401, detail="Invalid password")

    token = jwt.encode(
        {"sub": request.username, "exp": datetime.utcnow() + timedelta(days=TOKEN_TTL_DAYS)},
        SECRET_KEY,
        algorithm="HS256"
    )
    return AuthResponse(token=token)


# Bid entry

@app.get("/api/inventory-check", response_model=InventoryStatus)
def inventory_check(
    item_id: Optional[int] = None,
    auction_id: Optional[int] = None,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    """How much of an item is still available in an auction, with its current bids."""
    return BidLedger(db).check_inventory(item_id, auction_id)


@app.post("/api/save-bid", response_model=SaveBidResponse)
def save_bid(request: SaveBidRequest, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    """Save (or delete) the winning bid for an item in an auction."""
    if request.action not in ("save", "update", "delete"):
        raise ValidationError("Invalid action")
    if not request.auction_id or not request.item_id:
        raise ValidationError("Missing required fields")

    ledger = BidLedger(db)
    catalog = Catalog(db)

    if request.action == "delete":
        result = ledger.delete_bid(request.auction_id, request.item_id)
        message = "Bid deleted successfully"
    else:
        if not catalog.item_in_auction(request.item_id, request.auction_id):
            raise ValidationError(f"Item #{request.item_id} is not part of this auction")
        if not request.bidder_id:
            raise ValidationError("Bidder ID required for bid entries")
        if request.winning_price is None or request.winning_price <= 0:
            raise ValidationError("Winning price must be greater than 0")
        if request.quantity_won < 1:
            raise ValidationError("Quantity must be at least 1")

        result = ledger.save_bid(
            request.auction_id,
            request.item_id,
            request.bidder_id,
            request.winning_price,
            request.quantity_won,
        )
        message = "Bid saved successfully"

    if not result.success:
        logger.info(f"Bid {request.action} rejected for {username}: {', '.join(result.errors)}")
        raise result.error

    return SaveBidResponse(success=True, message=message, stats=catalog.get_auction_stats(request.auction_id))


@app.api_route("/api/update-bid", methods=["POST", "PATCH"], response_model=SuccessResponse)
def update_bid(request: UpdateBidRequest, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    """Edit or delete an existing bid by id."""
    if not request.action or not request.bid_id:
        raise ValidationError("Action and Bid ID required")

    ledger = BidLedger(db)
    if request.action == "delete":
        result = ledger.delete_bid_by_id(request.bid_id)
        message = "Bid deleted successfully"
    elif request.action == "update":
        result = ledger.update_bid(
            request.bid_id,
            request.bidder_id,
            winning_price=request.winning_price,
            quantity_won=request.quantity_won,
        )
        message = "Bid updated successfully"
    else:
        raise ValidationError("Invalid action")

    if not result.success:
        raise result.error
    return SuccessResponse(success=True, message=message)


@app.get("/api/check-item-in-auction", response_model=ItemValidationResponse)
def check_item_in_auction(
    item_id: Optional[int] = None,
    auction_id: Optional[int] = None,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    """Whether an item is enrolled in an auction."""
    if not item_id or not auction_id:
        raise ValidationError("Missing parameters", valid=False)
    return ItemValidationResponse(valid=Catalog(db).item_in_auction(item_id, auction_id))


@app.get("/api/lookup", response_model=LookupResponse)
def lookup(
    type: str = "",
    term: str = "",
    auction_id: Optional[int] = None,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    """Typeahead search for bidders or for the items of one auction."""
    if not term:
        return LookupResponse(results=[])

    catalog = Catalog(db)
    if type == "bidder":
        return LookupResponse(results=catalog.search_bidders(term))
    if type == "item":
        return LookupResponse(results=catalog.search_items(term, auction_id))
    raise ValidationError("Invalid lookup type")


# Bidders

@app.get("/api/bidders", response_model=BidderListResponse)
def list_bidders(
    search: str = "",
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    catalog = Catalog(db)
    bidders = catalog.list_bidders(search, limit, offset)
    return BidderListResponse(
        total=catalog.count_bidders(search),
        bidders=[BidderResponse.model_validate(b) for b in bidders],
    )


@app.post("/api/bidders", response_model=BidderResponse)
def create_bidder(request: BidderRequest, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    bidder = Catalog(db).create_bidder(request.model_dump(exclude_unset=True))
    return BidderResponse.model_validate(bidder)


@app.get("/api/bidders/{bidder_id}", response_model=BidderResponse)
def get_bidder(bidder_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    return BidderResponse.model_validate(Catalog(db).get_bidder(bidder_id))


@app.put("/api/bidders/{bidder_id}", response_model=BidderResponse)
def update_bidder(
    bidder_id: int,
    request: BidderRequest,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    bidder = Catalog(db).update_bidder(bidder_id, request.model_dump(exclude_unset=True))
    return BidderResponse.model_validate(bidder)


@app.delete("/api/bidders/{bidder_id}", response_model=SuccessResponse)
def delete_bidder(bidder_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    Catalog(db).delete_bidder(bidder_id)
    return SuccessResponse(message="Bidder deleted")


# Items

@app.get("/api/items", response_model=ItemListResponse)
def list_items(
    search: str = "",
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    catalog = Catalog(db)
    items = catalog.list_items(search, limit, offset)
    return ItemListResponse(
        total=catalog.count_items(search),
        items=[ItemResponse.model_validate(i) for i in items],
    )


@app.get("/api/items/unassigned", response_model=List[ItemResponse])
def list_unassigned_items(db: Session = Depends(get_db), username: str = Depends(verify_token)):
    """Items not yet enrolled in any auction (batch mode picker)."""
    return [ItemResponse.model_validate(i) for i in Catalog(db).items_available_for_auction()]


@app.post("/api/items", response_model=ItemResponse)
def create_item(request: ItemRequest, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    item = Catalog(db).create_item(request.model_dump(exclude_unset=True))
    return ItemResponse.model_validate(item)


@app.get("/api/items/{item_id}", response_model=ItemResponse)
def get_item(item_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    return ItemResponse.model_validate(Catalog(db).get_item(item_id))


@app.put("/api/items/{item_id}", response_model=ItemResponse)
def update_item(
    item_id: int,
    request: ItemRequest,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    item = Catalog(db).update_item(item_id, request.model_dump(exclude_unset=True))
    return ItemResponse.model_validate(item)


@app.delete("/api/items/{item_id}", response_model=SuccessResponse)
def delete_item(item_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    Catalog(db).delete_item(item_id)
    return SuccessResponse(message="Item deleted")


# Auctions

@app.get("/api/auctions", response_model=AuctionListResponse)
def list_auctions(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    catalog = Catalog(db)
    return AuctionListResponse(total=catalog.count_auctions(), auctions=catalog.list_auctions(limit, offset))


@app.post("/api/auctions", response_model=AuctionResponse)
def create_auction(request: AuctionRequest, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    catalog = Catalog(db)
    auction = catalog.create_auction(request.model_dump(exclude_unset=True))
    return catalog.get_auction_with_counts(auction.auction_id)


@app.get("/api/auctions/{auction_id}", response_model=AuctionResponse)
def get_auction(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    return Catalog(db).get_auction_with_counts(auction_id)


@app.put("/api/auctions/{auction_id}", response_model=AuctionResponse)
def update_auction(
    auction_id: int,
    request: AuctionRequest,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    catalog = Catalog(db)
    catalog.update_auction(auction_id, request.model_dump(exclude_unset=True))
    return catalog.get_auction_with_counts(auction_id)


@app.patch("/api/auctions/{auction_id}/status", response_model=AuctionResponse)
def update_auction_status(
    auction_id: int,
    request: AuctionStatusRequest,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    catalog = Catalog(db)
    catalog.update_auction_status(auction_id, request.status)
    return catalog.get_auction_with_counts(auction_id)


@app.delete("/api/auctions/{auction_id}", response_model=SuccessResponse)
def delete_auction(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    Catalog(db).delete_auction(auction_id)
    return SuccessResponse(message="Auction deleted")


@app.get("/api/auctions/{auction_id}/stats", response_model=AuctionStats)
def get_auction_stats(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    catalog = Catalog(db)
    catalog.get_auction(auction_id)
    return catalog.get_auction_stats(auction_id)


@app.get("/api/auctions/{auction_id}/items", response_model=List[ItemResponse])
def list_auction_items(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    catalog = Catalog(db)
    catalog.get_auction(auction_id)
    return [ItemResponse.model_validate(i) for i in catalog.items_for_auction(auction_id)]


@app.post("/api/auctions/{auction_id}/items", response_model=BatchAddItemsResponse)
def add_auction_items(
    auction_id: int,
    request: BatchAddItemsRequest,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    """Enroll items in an auction (batch mode). Each item succeeds or fails on its own."""
    return BatchAddItemsResponse(results=Catalog(db).add_items_to_auction(auction_id, request.item_ids))


@app.delete("/api/auctions/{auction_id}/items/{item_id}", response_model=SuccessResponse)
def remove_auction_item(
    auction_id: int,
    item_id: int,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    Catalog(db).remove_item_from_auction(item_id, auction_id)
    return SuccessResponse(message="Item removed from auction")


@app.get("/api/auctions/{auction_id}/bid-entry", response_model=List[BidEntryItem])
def get_bid_entry_items(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    """Items of an auction with their current winners, for the bid entry screen."""
    catalog = Catalog(db)
    catalog.get_auction(auction_id)
    return catalog.items_for_bid_entry(auction_id)


# Payments

@app.post("/api/payments", response_model=SavePaymentResponse)
def save_payment(request: PaymentRequest, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    payment_id = Reports(db).save_payment(
        request.bidder_id,
        request.auction_id,
        request.amount_paid,
        request.payment_method,
        check_number=request.check_number,
        notes=request.notes,
    )
    return SavePaymentResponse(payment_id=payment_id, message="Payment saved successfully")


@app.get("/api/auctions/{auction_id}/payments", response_model=List[PaymentResponse])
def list_payments(
    auction_id: int,
    bidder_id: Optional[int] = None,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    return [PaymentResponse.model_validate(p) for p in Reports(db).list_payments(auction_id, bidder_id)]


# Reports

@app.get("/api/reports/{auction_id}/summary", response_model=AuctionSummary)
def report_summary(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    return Reports(db).auction_summary(auction_id)


@app.get("/api/reports/{auction_id}/bidders", response_model=List[BidderPayment])
def report_bidder_payments(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    return Reports(db).bidder_payments(auction_id)


@app.get("/api/reports/{auction_id}/bidders/{bidder_id}", response_model=List[BidderLineItem])
def report_bidder_details(
    auction_id: int,
    bidder_id: int,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    return Reports(db).bidder_details(auction_id, bidder_id)


@app.get("/api/reports/{auction_id}/items", response_model=List[ItemResult])
def report_item_results(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    return Reports(db).item_results(auction_id)


@app.get("/api/reports/{auction_id}/unsold", response_model=List[UnsoldItem])
def report_unsold_items(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    return Reports(db).unsold_items(auction_id)


@app.get("/api/reports/{auction_id}/top", response_model=List[TopPerformer])
def report_top_performers(
    auction_id: int,
    limit: int = 10,
    db: Session = Depends(get_db),
    username: str = Depends(verify_token),
):
    return Reports(db).top_performers(auction_id, limit)


@app.get("/api/reports/{auction_id}/export/bidders.csv")
def export_bidder_payments(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    Catalog(db).get_auction(auction_id)
    return _csv_response(Reports(db).export_bidder_payments(auction_id), f"auction_{auction_id}_bidders.csv")


@app.get("/api/reports/{auction_id}/export/items.csv")
def export_item_results(auction_id: int, db: Session = Depends(get_db), username: str = Depends(verify_token)):
    Catalog(db).get_auction(auction_id)
    return _csv_response(Reports(db).export_item_results(auction_id), f"auction_{auction_id}_items.csv")
