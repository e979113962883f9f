# backend/travelbunk/api/v1/connections.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from travelbunk.db.database import get_db
from travelbunk.repositories.user_repository import UserDirectory
from travelbunk.schemas.connection import (
    ActionResult,
    ConnectionListResult,
    ConnectionStatusResult,
    RequestListResult,
    RespondRequestIn,
    SendRequestIn,
)
from travelbunk.services.connection_service import ConnectionRequestManager
from travelbunk.services.notification_service import get_notification_sink

router = APIRouter(prefix="/connections", tags=["connections"])

def get_connection_manager(
    db: AsyncSession = Depends(get_db),
    sink=Depends(get_notification_sink),
) -> ConnectionRequestManager:
    return ConnectionRequestManager(UserDirectory(db), sink)

@router.post("/send-request", response_model=ActionResult, response_model_exclude_none=True)
async def send_request(body: SendRequestIn, manager: ConnectionRequestManager = Depends(get_connection_manager)):
    """Send a connection request; the receiver gets a request-received push."""
    return await manager.send_request(body.from_id, body.to_id, body.context)

@router.post("/respond-request", response_model=ActionResult, response_model_exclude_none=True)
async def respond_request(body: RespondRequestIn, manager: ConnectionRequestManager = Depends(get_connection_manager)):
    """Accept or reject a pending request (action: accept | reject)."""
    return await manager.respond_request(body.to_id, body.from_id, body.action)

@router.get("/requests", response_model=RequestListResult, response_model_exclude_none=True)
async def list_requests(user_id: str = "", manager: ConnectionRequestManager = Depends(get_connection_manager)):
    return await manager.list_requests(user_id)

@router.get("/status", response_model=ConnectionStatusResult, response_model_exclude_none=True)
async def connection_status(a: str = "", b: str = "", manager: ConnectionRequestManager = Depends(get_connection_manager)):
    return await manager.connection_status(a, b)

@router.get("/{user_id}", response_model=ConnectionListResult, response_model_exclude_none=True)
async def list_connections(user_id: str, manager: ConnectionRequestManager = Depends(get_connection_manager)):
    return await manager.list_connections(user_id)
