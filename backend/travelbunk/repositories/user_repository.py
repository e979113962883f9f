from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from travelbunk.db.models.user import User

class UserExistsError(Exception):
    """Raised when creating a user whose email is already registered."""

def normalize_id(user_id: Optional[str]) -> str:
    return (user_id or "").strip().lower()

class UserDirectory:
    """
    Keyed access to user documents (email -> User).
    The caller owns the transaction: nothing here commits except create().
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == normalize_id(user_id)))
        return result.scalar_one_or_none()

    async def find_for_update(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """
        Loads several users with a row lock. Rows are locked in email order
        so two operations over the same pair always lock in the same order.
        """
        emails = sorted({normalize_id(u) for u in user_ids})
        stmt = (
            select(User)
            .where(User.email.in_(emails))
            .order_by(User.email)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return {u.email: u for u in result.scalars().all()}

    async def update(self, user_id: str, patch: dict):
        """
        Partial field update, flushed inside the caller's transaction.
        Unknown ids match nothing and are ignored. Embedded lists must be
        passed as new list objects so the change is detected.
        """
        user = await self.find(user_id)
        if user is None:
            return
        for field, value in patch.items():
            setattr(user, field, value)
        await self.db.flush()

    async def create(self, email: str, **fields) -> User:
        user = User(email=normalize_id(email), incoming_requests=[], outgoing_requests=[], connections=[], **fields)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise UserExistsError(email) from None
        await self.db.refresh(user)
        return user

    async def all(self) -> List[User]:
        result = await self.db.execute(select(User).order_by(User.email))
        return list(result.scalars().all())

    async def commit(self):
        await self.db.commit()

    async def rollback(self):
        await self.db.rollback()
