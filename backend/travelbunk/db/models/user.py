# backend/travelbunk/db/models/user.py
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Integer, String, Text, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from travelbunk.db.database import Base

# JSONB on PostgreSQL, plain JSON everywhere else (tests run on SQLite)
EmbeddedJSON = JSON().with_variant(JSONB(), "postgresql")

def get_utc_now():
    return datetime.now(timezone.utc).replace(tzinfo=None)

class User(Base):
    """
    One document per traveller. Connection requests and the connection
    set are embedded in the row, denormalized on both ends of a request.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    college: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    img: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    incoming_requests: Mapped[list[dict]] = mapped_column(EmbeddedJSON, default=list) # requests received
    outgoing_requests: Mapped[list[dict]] = mapped_column(EmbeddedJSON, default=list) # requests sent
    connections: Mapped[list[str]] = mapped_column(EmbeddedJSON, default=list) # connected emails

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_utc_now)

    @property
    def display_name(self) -> str:
        return self.first_name or self.email
