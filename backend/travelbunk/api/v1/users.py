# backend/travelbunk/api/v1/users.py
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from travelbunk.db.database import get_db
from travelbunk.repositories.user_repository import UserDirectory, UserExistsError
from travelbunk.schemas.user import UserCreate, UserRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a traveller profile"""
    directory = UserDirectory(db)
    try:
        user = await directory.create(**user_in.model_dump())
    except UserExistsError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    logger.info("New user registered: %s", user.email)
    return user

@router.get("/{email}", response_model=UserRead)
async def get_user(email: str, db: AsyncSession = Depends(get_db)):
    user = await UserDirectory(db).find(email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
