"""Seed script — populates the database with admin accounts for testing."""

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from course_auth.database.engine import async_session_factory, init_db
from course_auth.database.repository import AccountRepository
from course_auth.models.account import Account, AccountRole
from course_auth.services.passwords import hash_password

SAMPLE_ADMINS = [
    ("Admin One", "admin1@example.com", "admin1-pass"),
    ("Admin Two", "admin2@example.com", "admin2-pass"),
]


async def seed() -> None:
    """Insert sample admins that don't exist yet."""
    await init_db()
    created = 0
    async with async_session_factory() as session:
        session: AsyncSession
        repo = AccountRepository(session)
        for name, email, password in SAMPLE_ADMINS:
            if await repo.find_by_email(email) is not None:
                continue
            await repo.add(
                Account(
                    name=name,
                    email=email,
                    password_hash=hash_password(password),
                    role=AccountRole.ADMIN,
                )
            )
            created += 1
        await session.commit()
    print(f"✅ Seeded {created} admin account(s) into the database.")


if __name__ == "__main__":
    asyncio.run(seed())
