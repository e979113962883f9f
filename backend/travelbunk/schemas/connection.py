from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel

class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

# respond action -> terminal status
ACTION_STATUS = {
    "accept": RequestStatus.ACCEPTED,
    "reject": RequestStatus.REJECTED,
}

class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    STORE = "store"

class ConnectionRequest(BaseModel):
    """A request as stored on either end. counterparty_name is a snapshot taken at send time."""
    request_id: Optional[str] = None
    from_id: str
    to_id: str
    counterparty_name: Optional[str] = None
    context: Optional[Any] = None
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime

# --- Boundary inputs ---
# Identifiers default to "" so a missing field becomes a reported validation failure.

class SendRequestIn(BaseModel):
    from_id: str = ""
    to_id: str = ""
    context: Optional[Any] = None

class RespondRequestIn(BaseModel):
    to_id: str = ""
    from_id: str = ""
    action: str = ""

# --- Results ---

class ActionResult(BaseModel):
    ok: bool
    message: Optional[str] = None
    error: Optional[ErrorKind] = None
    request_id: Optional[str] = None
    partial: bool = False

class RequestListResult(BaseModel):
    ok: bool
    message: Optional[str] = None
    error: Optional[ErrorKind] = None
    incoming: List[ConnectionRequest] = []
    outgoing: List[ConnectionRequest] = []

class ConnectionStatusResult(BaseModel):
    ok: bool
    connected: bool = False
    message: Optional[str] = None
    error: Optional[ErrorKind] = None

class ConnectionListResult(BaseModel):
    ok: bool
    connections: List[str] = []
    message: Optional[str] = None
    error: Optional[ErrorKind] = None

class ReconcileReport(BaseModel):
    users_scanned: int = 0
    connections_repaired: int = 0
    requests_repaired: int = 0
