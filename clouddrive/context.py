# Filename: clouddrive/context.py
from typing import Iterator, List, Optional

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlmodel import Session

from .billing import Plan, StripeBilling, build_plans
from .config import Settings
from .db import init_db, make_engine
from .oauth import GoogleOAuth
from .realtime import Notifier
from .storage import BlobStore


class AppContext:
    """Everything that talks to the outside world, built once per process.

    Routes reach it through ``get_context`` so tests can hand the app an
    in-memory database, a temporary blob directory and fake gateways.
    """

    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        blobs: BlobStore,
        notifier: Notifier,
        billing: StripeBilling,
        google: GoogleOAuth,
        plans: Optional[List[Plan]] = None,
    ):
        self.settings = settings
        self.engine = engine
        self.blobs = blobs
        self.notifier = notifier
        self.billing = billing
        self.google = google
        self.plans = plans if plans is not None else build_plans(settings)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        return cls(
            settings=settings,
            engine=make_engine(settings.database_url, echo=settings.debug),
            blobs=BlobStore(
                settings.storage_path / "files",
                secret_key=settings.secret_key,
                base_url=settings.public_base_url,
                algorithm=settings.jwt_algorithm,
            ),
            notifier=Notifier(),
            billing=StripeBilling(settings.stripe_secret_key, settings.stripe_webhook_secret),
            google=GoogleOAuth(
                settings.google_client_id,
                settings.google_client_secret,
                redirect_uri=settings.oauth_redirect_uri,
            ),
        )

    @property
    def free_plan(self) -> Plan:
        return self.plans[0]

    def init(self) -> None:
        """Create DB tables and storage dirs"""
        self.blobs.init()
        init_db(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_session(request: Request) -> Iterator[Session]:
    """Yield a DB session (dependency)."""
    with Session(get_context(request).engine) as session:
        yield session
