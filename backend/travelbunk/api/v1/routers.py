# backend/travelbunk/api/v1/routers.py
from fastapi import APIRouter
from travelbunk.api.v1 import users, connections

# main API router (/v1)
api_router = APIRouter(prefix="/v1")

api_router.include_router(users.router)
api_router.include_router(connections.router)
