import pytest
import os
import tempfile
import atexit
from datetime import date, datetime, timedelta
from decimal import Decimal
import jwt

# Point the application at a throwaway SQLite file before anything imports database.session
_test_db_file = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
_test_db_file.close()
os.environ["DATABASE_URL"] = f"sqlite:///{_test_db_file.name}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ADMIN_PASSWORD"] = "test-password"


def _cleanup_test_db():
    if os.path.exists(_test_db_file.name):
        os.unlink(_test_db_file.name)


atexit.register(_cleanup_test_db)

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from database.models import Base, Bidder, Auction, Item, AuctionItem, WinningBid, AuctionStatus


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine backed by its own SQLite file."""
    test_db = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
    test_db.close()

    engine = create_engine(f"sqlite:///{test_db.name}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    os.unlink(test_db.name)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
        session.rollback()
    finally:
        session.close()


@pytest.fixture(scope="function")
def override_get_db(db_session):
    """Override get_db dependency for FastAPI tests."""
    from server.api import app
    from database.session import get_db

    def _get_test_db():
        yield db_session

    app.dependency_overrides.clear()
    app.dependency_overrides[get_db] = _get_test_db
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def sample_auction(db_session):
    auction = Auction(
        auction_date=date(2025, 11, 15),
        auction_description="Fall Gala Silent Auction",
        status=AuctionStatus.ACTIVE.value,
    )
    db_session.add(auction)
    db_session.commit()
    db_session.refresh(auction)
    return auction


@pytest.fixture
def sample_item(db_session, sample_auction):
    """An item with ten units, enrolled in the sample auction."""
    item = Item(item_name="Wine Basket", item_description="Assorted reds", item_quantity=10)
    db_session.add(item)
    db_session.commit()
    db_session.add(AuctionItem(auction_id=sample_auction.auction_id, item_id=item.item_id))
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def single_item(db_session, sample_auction):
    """A one-of-a-kind item, enrolled in the sample auction."""
    item = Item(item_name="Signed Guitar", item_description="Signed by the band", item_quantity=1)
    db_session.add(item)
    db_session.commit()
    db_session.add(AuctionItem(auction_id=sample_auction.auction_id, item_id=item.item_id))
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def bidder_a(db_session):
    bidder = Bidder(first_name="Alice", last_name="Anderson", phone="5551234567", email="alice@example.com")
    db_session.add(bidder)
    db_session.commit()
    db_session.refresh(bidder)
    return bidder


@pytest.fixture
def bidder_b(db_session):
    bidder = Bidder(first_name="Bob", last_name="Baker", email="bob@example.com")
    db_session.add(bidder)
    db_session.commit()
    db_session.refresh(bidder)
    return bidder


@pytest.fixture
def sample_bid(db_session, sample_auction, sample_item, bidder_a):
    """Alice holds four units of the wine basket."""
    bid = WinningBid(
        auction_id=sample_auction.auction_id,
        item_id=sample_item.item_id,
        bidder_id=bidder_a.bidder_id,
        winning_price=Decimal("50.00"),
        quantity_won=4,
    )
    db_session.add(bid)
    db_session.commit()
    db_session.refresh(bid)
    return bid


@pytest.fixture
def auth_token():
    """Generate a test JWT token."""
    payload = {"sub": "testuser", "exp": datetime.utcnow() + timedelta(days=1)}
    return jwt.encode(payload, "test-secret-key", algorithm="HS256")


@pytest.fixture
def auth_headers(auth_token):
    """Get authorization headers."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def client(override_get_db):
    """Create a test client with database override."""
    from fastapi.testclient import TestClient
    from server.api import app
    return TestClient(app)
