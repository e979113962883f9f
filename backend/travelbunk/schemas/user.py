from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr

class UserCreate(BaseModel):
    email: EmailStr
    first_name: str
    last_name: Optional[str] = None
    college: Optional[str] = None
    bio: Optional[str] = "Travel enthusiast. Love exploring new cultures!"
    img: Optional[str] = None

class UserRead(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    college: Optional[str] = None
    bio: Optional[str] = None
    img: Optional[str] = None
    connections: List[str] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
