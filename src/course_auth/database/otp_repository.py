"""OTP repository — durable storage for OTP records.

Attempt counting and verification go through conditional ``UPDATE``
statements keyed by the attempts value the caller last read, so two
concurrent verifications of the same record cannot both count as one
attempt.  A ``False`` return means another writer got there first and the
caller should reload and re-evaluate.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from course_auth.models.otp import OTPPurpose, OTPRecord


class OTPRepository:
    """Encapsulates all database queries related to OTP records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def insert(self, record: OTPRecord) -> OTPRecord:
        """Stage a new record and flush so it receives an id."""
        self._session.add(record)
        await self._session.flush()
        return record

    async def find_most_recent(
        self,
        subject_email: str,
        purpose: OTPPurpose,
        *,
        verified: bool | None = None,
        code: str | None = None,
        created_since: datetime | None = None,
    ) -> OTPRecord | None:
        """Return the newest record for the pair, optionally filtered.

        Always re-reads the row so state written by other sessions is seen.
        """
        stmt = select(OTPRecord).where(
            OTPRecord.subject_email == subject_email,
            OTPRecord.purpose == purpose,
        )
        if verified is not None:
            stmt = stmt.where(OTPRecord.verified.is_(verified))
        if code is not None:
            stmt = stmt.where(OTPRecord.code == code)
        if created_since is not None:
            stmt = stmt.where(OTPRecord.created_at >= created_since)
        stmt = (
            stmt.order_by(OTPRecord.created_at.desc(), OTPRecord.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_many(
        self,
        subject_email: str,
        purpose: OTPPurpose,
        *,
        verified: bool | None = None,
    ) -> int:
        """Delete every record for the pair; return how many were removed."""
        stmt = delete(OTPRecord).where(
            OTPRecord.subject_email == subject_email,
            OTPRecord.purpose == purpose,
        )
        if verified is not None:
            stmt = stmt.where(OTPRecord.verified.is_(verified))
        result = await self._session.execute(
            stmt.execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def delete_one(self, record_id: int) -> None:
        await self._session.execute(
            delete(OTPRecord)
            .where(OTPRecord.id == record_id)
            .execution_options(synchronize_session="fetch")
        )

    async def purge_expired(self, now: datetime, verified_window: timedelta) -> int:
        """Delete pending records past expiry and verified ones past their window."""
        result = await self._session.execute(
            delete(OTPRecord)
            .where(
                or_(
                    and_(OTPRecord.verified.is_(False), OTPRecord.expires_at < now),
                    and_(
                        OTPRecord.verified.is_(True),
                        OTPRecord.created_at < now - verified_window,
                    ),
                )
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def increment_attempts(self, record_id: int, expected_attempts: int) -> bool:
        """Add one failed attempt if the record still has *expected_attempts*."""
        result = await self._session.execute(
            update(OTPRecord)
            .where(
                OTPRecord.id == record_id,
                OTPRecord.verified.is_(False),
                OTPRecord.attempts == expected_attempts,
            )
            .values(attempts=OTPRecord.attempts + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def mark_verified(self, record_id: int, expected_attempts: int) -> bool:
        """Flag the record verified and reset its attempts, if unchanged since read."""
        result = await self._session.execute(
            update(OTPRecord)
            .where(
                OTPRecord.id == record_id,
                OTPRecord.verified.is_(False),
                OTPRecord.attempts == expected_attempts,
            )
            .values(verified=True, attempts=0)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
