"""Pytest configuration and shared fixtures"""

import os

os.environ.setdefault("CLOUDDRIVE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CLOUDDRIVE_DATABASE_URL", "sqlite://")

from typing import Dict, Generator, List, Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from clouddrive.billing import StripeBilling, build_plans  # noqa: E402
from clouddrive.config import settings  # noqa: E402
from clouddrive.context import AppContext  # noqa: E402
from clouddrive.db import make_engine  # noqa: E402
from clouddrive.main import create_app  # noqa: E402
from clouddrive.oauth import GoogleOAuth, OAuthError  # noqa: E402
from clouddrive.realtime import Notifier  # noqa: E402
from clouddrive.storage import BlobStore  # noqa: E402


class FakeBilling(StripeBilling):
    """Records checkout requests instead of calling Stripe."""

    def __init__(self, webhook_secret: Optional[str] = None):
        super().__init__("sk_test_fake", webhook_secret)
        self.checkouts: List[Dict] = []

    def create_checkout_session(self, price_id, success_url, cancel_url, metadata, customer_email=None):
        self.checkouts.append({"price_id": price_id, "metadata": metadata, "customer_email": customer_email})
        return "https://checkout.stripe.test/session/cs_test_123"


class FakeGoogle(GoogleOAuth):
    def __init__(self, profile: Optional[Dict] = None):
        super().__init__("client-id", "client-secret", redirect_uri="http://testserver/api/auth/google/callback")
        self.profile = profile

    async def fetch_profile(self, code: str) -> Dict:
        if self.profile is None:
            raise OAuthError("token exchange failed with status 400")
        return self.profile


@pytest.fixture
def ctx(tmp_path) -> Generator[AppContext, None, None]:
    """Application context over an in-memory database and a temporary blob dir"""
    context = AppContext(
        settings=settings,
        engine=make_engine("sqlite://"),
        blobs=BlobStore(tmp_path / "blobs", secret_key=settings.secret_key, base_url="http://testserver"),
        notifier=Notifier(),
        billing=StripeBilling(None),
        google=FakeGoogle(),
        plans=build_plans(settings),
    )
    context.init()
    yield context
    context.dispose()


@pytest.fixture
def session(ctx) -> Generator[Session, None, None]:
    with Session(ctx.engine) as s:
        yield s


@pytest.fixture
def client(ctx) -> Generator[TestClient, None, None]:
    app = create_app(ctx)
    with TestClient(app) as c:
        yield c


def register(client: TestClient, email: str, password: str = "secret123") -> Dict:
    r = client.post("/api/auth/register", json={"email": email, "password": password})
    assert r.status_code == 201, r.text
    body = r.json()
    return {"id": body["user"]["id"], "email": email, "token": body["token"]}


def auth(user: Dict) -> Dict[str, str]:
    return {"Authorization": f"Bearer {user['token']}"}


def upload(client: TestClient, user: Dict, content: bytes = b"0123456789", name: str = "notes.txt", parent_id=None):
    data = {"parentId": str(parent_id)} if parent_id is not None else {}
    return client.post(
        "/api/files/upload",
        files={"file": (name, content, "text/plain")},
        data=data,
        headers=auth(user),
    )


@pytest.fixture
def alice(client) -> Dict:
    return register(client, "alice@example.com")


@pytest.fixture
def bob(client) -> Dict:
    return register(client, "bob@example.com")
