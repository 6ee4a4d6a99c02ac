"""Account repository — data access layer for account lookups."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from course_auth.models.account import Account, AccountRole


class AccountRepository:
    """Encapsulates all database queries related to accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_email(
        self, email: str, role: AccountRole | None = None
    ) -> Account | None:
        """Look up an active account by its lower-cased email.

        When *role* is given, only an account with that role matches.
        """
        stmt = select(Account).where(Account.email == email, Account.is_active.is_(True))
        if role is not None:
            stmt = stmt.where(Account.role == role)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, account: Account) -> Account:
        """Stage a new account and flush so it receives an id."""
        self._session.add(account)
        await self._session.flush()
        return account

    async def update_password(self, account: Account, password_hash: str) -> None:
        account.password_hash = password_hash
        await self._session.flush()
