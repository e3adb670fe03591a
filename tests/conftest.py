import os
from typing import Callable, Generator
from unittest.mock import patch

# Override settings for tests before importing app modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["SHOP_WALLET_ADDRESS"] = "HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH"
os.environ["ELURC_TOKEN_ADDRESS"] = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
os.environ["ADMIN_NOTIFICATION_EMAIL"] = "ops@example.com"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.models import Category, Order, Product
from app.models.database import Base, get_db
from app.models.user import ROLE_ADMIN, ROLE_CUSTOMER, User
from app.services import order_service
from app.services.order_service import OrderLine
from app.services.timeutils import utcnow
from tests.factories import CUSTOMER_WALLET, shipping_address


# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def mock_send_email():
    """Capture outgoing email instead of talking to SMTP."""
    with patch("app.services.email_service._send_email") as mock_send:
        yield mock_send


def _create_user(db: Session, email: str, role: str) -> User:
    from app.api.auth import get_password_hash

    user = User(
        email=email,
        display_name=email.split("@")[0],
        hashed_password=get_password_hash("testpassword123"),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db: Session) -> User:
    return _create_user(db, "admin@example.com", ROLE_ADMIN)


@pytest.fixture
def customer_user(db: Session) -> User:
    return _create_user(db, "customer@example.com", ROLE_CUSTOMER)


def _login(client: TestClient, email: str) -> dict[str, str]:
    response = client.post(
        "/api/auth/login",
        json={"email": email, "password": "testpassword123"},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}


@pytest.fixture
def admin_headers(client: TestClient, admin_user: User) -> dict[str, str]:
    return _login(client, admin_user.email)


@pytest.fixture
def customer_headers(client: TestClient, customer_user: User) -> dict[str, str]:
    return _login(client, customer_user.email)


@pytest.fixture
def category(db: Session) -> Category:
    category = Category(name="Dairy", slug="dairy", description="Milk and cheese")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def product(db: Session, category: Category) -> Product:
    """2.50 ELURC per unit, 10 in stock."""
    product = Product(
        name="Organic Milk",
        slug="organic-milk",
        price_elurc=2_500_000,
        price_eur=250,
        category_id=category.id,
        stock=10,
        in_stock=True,
        images=[],
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def product2(db: Session, category: Category) -> Product:
    """1.00 ELURC per unit, 3 in stock."""
    product = Product(
        name="Goat Cheese",
        slug="goat-cheese",
        price_elurc=1_000_000,
        price_eur=100,
        category_id=category.id,
        stock=3,
        in_stock=True,
        images=[],
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def order_factory(db: Session) -> Callable[..., Order]:
    """Create an order through the service, then force it into the requested status."""

    def make(
        items: list[tuple[Product, int]],
        status: str = "pending",
        wallet: str = CUSTOMER_WALLET,
    ) -> Order:
        order = order_service.create_order(
            db,
            lines=[OrderLine(product_id=product.id, quantity=quantity) for product, quantity in items],
            customer_wallet=wallet,
            customer_email="buyer@example.com",
            shipping=shipping_address(),
        )
        if status != "pending":
            order.status = status
            if status in {"paid", "processing", "fulfilled"}:
                order.paid_at = utcnow()
                order.transaction_signature = f"{order.id}" + "7" * 87
            db.commit()
            db.refresh(order)
        return order

    return make
