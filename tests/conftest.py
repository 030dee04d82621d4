import os

# Settings are read at import time
os.environ.setdefault("SQLALCHEMY_DATABASE_URL", "sqlite://")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["FAST_STARTUP"] = "true"
os.environ["ADMIN_EMAILS"] = "Admin@Example.com"

from datetime import date, datetime, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from clients.deapi import ImageResult, JobStatus, TranscriptionResult, VideoResult
from clients.supabase_auth import AuthUser
from clients.text_generation import TextGenerationResult
from core.config import settings
from core.dependencies import (
    get_db,
    get_auth_client,
    get_admin_policy,
    get_ledger,
    get_text_client,
    get_deapi_client,
)
from core.security import AdminPolicy
from db.session import Base
from main import app
from models import CreditPackage, CreditTopup, TopupStatus, UserCredit, UserWallet
from services.credit_ledger import CreditLedger, LedgerConfig

FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
MONTH = date(2026, 3, 1)

USER_TOKEN = "user-token"
OTHER_TOKEN = "other-token"
ADMIN_TOKEN = "admin-token"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeAuthClient:
    """In-memory stand-in for the hosted auth service."""

    def __init__(self):
        self.tokens: Dict[str, AuthUser] = {}
        self.directory: List[AuthUser] = []
        self.list_calls: List[tuple] = []

    def add_user(self, user_id: str, email: str, token: Optional[str] = None, verified: bool = True) -> AuthUser:
        user = AuthUser(
            id=user_id,
            email=email,
            email_verified=verified,
            created_at="2026-01-01T00:00:00Z",
        )
        self.directory.append(user)
        if token:
            self.tokens[token] = user
        return user

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        return self.tokens.get(access_token)

    async def list_users(self, page: int = 1, per_page: int = 50) -> List[AuthUser]:
        self.list_calls.append((page, per_page))
        start = (page - 1) * per_page
        return self.directory[start:start + per_page]

    async def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        return next((u for u in self.directory if u.id == user_id), None)


class FakeTextClient:
    def __init__(self, text: str = "generated text", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[dict] = []

    async def generate(self, messages, max_tokens: int = 1500, temperature: float = 0.8) -> TextGenerationResult:
        self.calls.append({"messages": messages, "max_tokens": max_tokens, "temperature": temperature})
        if self.error:
            raise self.error
        return TextGenerationResult(text=self.text, provider="groq", attempts=1)


class FakeDeapiClient:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.transcribed: List[str] = []
        self.images: List[str] = []
        self.videos: List[dict] = []

    async def transcribe_video(self, video_url: str) -> TranscriptionResult:
        self.transcribed.append(video_url)
        if self.error:
            raise self.error
        return TranscriptionResult(text="hello world", request_id="req-1", attempts=2)

    async def generate_image(self, prompt: str, width: int = 1024, height: int = 1024) -> ImageResult:
        self.images.append(prompt)
        if self.error:
            raise self.error
        return ImageResult(image_url="https://cdn.example.com/i.png", request_id=None, attempts=1)

    async def image_to_video(self, image: bytes, filename: str, content_type: str, options) -> VideoResult:
        self.videos.append({"image": image, "filename": filename, "content_type": content_type, "options": options})
        if self.error:
            raise self.error
        return VideoResult(video_url="https://cdn.example.com/v.mp4", request_id="vid-1", attempts=1)

    async def job_status(self, request_id: str) -> JobStatus:
        return JobStatus(
            request_id=request_id,
            status="done",
            video_url="https://cdn.example.com/v.mp4",
            progress=100,
            error=None,
        )


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return LedgerConfig.from_settings(settings)


@pytest.fixture
def ledger(ledger_config) -> CreditLedger:
    return CreditLedger(ledger_config, clock=lambda: FIXED_NOW)


@pytest.fixture
def auth_client() -> FakeAuthClient:
    fake = FakeAuthClient()
    fake.add_user("user-1", "user@example.com", token=USER_TOKEN)
    fake.add_user("user-2", "other@example.com", token=OTHER_TOKEN)
    fake.add_user("admin-1", "admin@example.com", token=ADMIN_TOKEN)
    return fake


@pytest.fixture
def text_client() -> FakeTextClient:
    return FakeTextClient()


@pytest.fixture
def deapi_client() -> FakeDeapiClient:
    return FakeDeapiClient()


@pytest.fixture
def client(db, ledger, auth_client, text_client, deapi_client):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_client] = lambda: auth_client
    app.dependency_overrides[get_admin_policy] = lambda: AdminPolicy.from_emails(settings.admin_emails)
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_text_client] = lambda: text_client
    app.dependency_overrides[get_deapi_client] = lambda: deapi_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_header(token: str = USER_TOKEN) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def seed_month(db, user_id: str, used: int, quota: int = 100, month_start: date = MONTH) -> UserCredit:
    row = UserCredit(user_id=user_id, month_start=month_start, monthly_quota=quota, used=used)
    db.add(row)
    db.commit()
    return row


def seed_wallet(db, user_id: str, balance: float) -> UserWallet:
    row = UserWallet(user_id=user_id, balance=balance)
    db.add(row)
    db.commit()
    return row


def seed_package(db, code: str = "pack_10", usd_price: float = 10.0, credits: int = 1000,
                 active: bool = True) -> CreditPackage:
    package = CreditPackage(code=code, name=code.replace("_", " ").title(), usd_price=usd_price,
                            credits=credits, active=active)
    db.add(package)
    db.commit()
    db.refresh(package)
    return package


def seed_topup(db, user_id: str, package: CreditPackage, status: TopupStatus = TopupStatus.PENDING) -> CreditTopup:
    topup = CreditTopup(
        user_id=user_id,
        package_id=package.id,
        wallet_network="TRC20",
        tx_hash="0xabcdef1234567890",
        status=status,
    )
    db.add(topup)
    db.commit()
    db.refresh(topup)
    return topup


def month_row(db, user_id: str, month_start: date = MONTH) -> Optional[UserCredit]:
    db.expire_all()
    return db.query(UserCredit).filter_by(user_id=user_id, month_start=month_start).first()


def wallet_balance(db, user_id: str) -> Optional[float]:
    db.expire_all()
    return db.query(UserWallet.balance).filter_by(user_id=user_id).scalar()
