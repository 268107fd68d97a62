import os
import re
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

# Set env vars before the app modules read their configuration
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AWS_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_REGION", "us-east-1")

from database import init_db  # noqa: E402
from errors import TransportError  # noqa: E402
from services.otp_service import OTPService  # noqa: E402
from services.otp_store import OTPStore  # noqa: E402


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeSender:
    """Records messages instead of sending them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html_body, text_body=None):
        if self.fail:
            raise TransportError("Email send failed: MessageRejected")
        self.sent.append(
            {"to": to, "subject": subject, "html_body": html_body, "text_body": text_body}
        )
        return f"message-{len(self.sent)}"

    def last_code(self) -> str:
        match = re.search(r">(\d{6})<", self.sent[-1]["html_body"])
        assert match, "no code in email body"
        return match.group(1)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine, clock):
    return OTPStore(engine, clock=clock)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def service(store, sender, clock):
    return OTPService(store=store, sender=sender, lifetime_minutes=5, clock=clock)
