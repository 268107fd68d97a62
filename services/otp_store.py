import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import delete, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from database import OTPEntry, engine as default_engine, get_session, utc_now

logger = logging.getLogger("email_otp_api.store")

# Dialects with a native INSERT ... ON CONFLICT DO UPDATE
UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class OTPStore:
    """Key-value persistence for pending codes, keyed by email.

    Each method runs in its own session and commits before returning, so a
    single call is atomic. Sequences of calls are not.
    """

    def __init__(self, engine: Engine = default_engine, clock: Callable[[], datetime] = utc_now):
        self.engine = engine
        self.clock = clock

    def put(self, email: str, code_hash: str) -> datetime:
        """Write the record for ``email``, replacing any previous one.

        Concurrent writes for the same email never fail, the last one wins.
        """
        created_at = self.clock()
        insert = UPSERT_INSERTS.get(self.engine.dialect.name)

        with get_session(self.engine) as session:
            if insert is None:
                self._merge(session, email, code_hash, created_at)
                return created_at

            stmt = insert(OTPEntry).values(email=email, code_hash=code_hash, created_at=created_at)
            stmt = stmt.on_conflict_do_update(
                index_elements=["email"],
                set_={"code_hash": stmt.excluded.code_hash, "created_at": stmt.excluded.created_at},
            )
            session.exec(stmt)
            session.commit()

        return created_at

    def _merge(self, session, email: str, code_hash: str, created_at: datetime) -> None:
        try:
            session.merge(OTPEntry(email=email, code_hash=code_hash, created_at=created_at))
            session.commit()
        except IntegrityError:
            # Another writer inserted the row after merge looked it up
            session.rollback()
            session.exec(
                update(OTPEntry)
                .where(OTPEntry.email == email)
                .values(code_hash=code_hash, created_at=created_at)
            )
            session.commit()

    def get(self, email: str) -> OTPEntry | None:
        with get_session(self.engine) as session:
            entry = session.get(OTPEntry, email)

        if entry is not None and entry.created_at.tzinfo is None:
            # SQLite stores naive datetime, so replace tzinfo
            entry.created_at = entry.created_at.replace(tzinfo=timezone.utc)
        return entry

    def delete(self, email: str) -> bool:
        with get_session(self.engine) as session:
            result = session.exec(delete(OTPEntry).where(OTPEntry.email == email))
            session.commit()
            return bool(result.rowcount)

    def delete_if_matches(self, email: str, code_hash: str) -> bool:
        """Delete the record only if it still holds ``code_hash``.

        Returns False when the record was replaced or removed in the meantime.
        """
        stmt = delete(OTPEntry).where(
            OTPEntry.email == email, OTPEntry.code_hash == code_hash
        )
        with get_session(self.engine) as session:
            result = session.exec(stmt)
            session.commit()
            return bool(result.rowcount)

    def delete_expired(self, cutoff: datetime) -> int:
        # Bulk delete expired OTP entries
        with get_session(self.engine) as session:
            result = session.exec(delete(OTPEntry).where(OTPEntry.created_at < cutoff))
            session.commit()
            rows_deleted = result.rowcount or 0

        if rows_deleted:
            logger.info(f"Removed {rows_deleted} expired OTP entries")
        return rows_deleted
