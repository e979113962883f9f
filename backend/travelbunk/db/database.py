import logging
from typing import AsyncGenerator

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from travelbunk.core.config import DATABASE_URL, SQL_ECHO, SEED_DEMO_USERS

logger = logging.getLogger(__name__)

engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

class Base(DeclarativeBase):
    pass

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session

async def init_db():
    """
    Creates the tables on startup and, when SEED_DEMO_USERS is set,
    the two demo accounts used by the frontend walkthrough.
    """
    # register models on Base.metadata
    from travelbunk.db.models import user

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if not SEED_DEMO_USERS:
        return

    from travelbunk.db.models.user import User

    async with AsyncSessionLocal() as session:
        async def create_demo_user(email, first_name, college):
            res = await session.execute(select(User).where(User.email == email))
            if res.scalar_one_or_none():
                return
            logger.info("Creating demo user %s", email)
            session.add(User(email=email, first_name=first_name, college=college))

        await create_demo_user("alice@x.com", "Alice", "IIT Bombay")
        await create_demo_user("bob@x.com", "Bob", "NIT Goa")

        await session.commit()
        logger.info("Demo users ready")
