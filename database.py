from datetime import datetime, timezone

from sqlmodel import Field, Session, SQLModel, create_engine

from config import DATABASE_URL

engine = create_engine(DATABASE_URL, echo=False)


def init_db(bind=engine):
    SQLModel.metadata.create_all(bind)


def get_session(bind=engine):
    return Session(bind)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OTPEntry(SQLModel, table=True):
    """Pending one-time code for an email address, at most one per address."""

    __tablename__ = "email_otps"

    # Exact match, addresses are not case folded
    email: str = Field(primary_key=True)
    code_hash: str
    created_at: datetime = Field(default_factory=utc_now, index=True)
