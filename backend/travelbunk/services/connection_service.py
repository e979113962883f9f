# backend/travelbunk/services/connection_service.py
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from email_validator import validate_email, EmailNotValidError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from travelbunk.repositories.user_repository import UserDirectory, normalize_id
from travelbunk.schemas.connection import (
    ACTION_STATUS,
    ActionResult,
    ConnectionListResult,
    ConnectionRequest,
    ConnectionStatusResult,
    ErrorKind,
    ReconcileReport,
    RequestListResult,
    RequestStatus,
)
from travelbunk.services.notification_service import REQUEST_RECEIVED, REQUEST_RESPONDED

logger = logging.getLogger(__name__)

PENDING = RequestStatus.PENDING.value

# (channel, event_name, payload), published once the transaction has committed
Notification = Tuple[str, str, dict]

def _fail(kind: ErrorKind, message: str) -> ActionResult:
    return ActionResult(ok=False, error=kind, message=message)

def _invalid_identifier(user_id: str) -> Optional[str]:
    try:
        validate_email(user_id, check_deliverability=False)
    except EmailNotValidError as e:
        return str(e)
    return None

def _check_pair(first: str, second: str) -> Optional[ActionResult]:
    if not first or not second:
        return _fail(ErrorKind.VALIDATION, "Missing emails")
    for user_id in (first, second):
        reason = _invalid_identifier(user_id)
        if reason:
            return _fail(ErrorKind.VALIDATION, f"Invalid email {user_id!r}: {reason}")
    return None

def _latest_index(records: List[dict], key: str, user_id: str,
                  status: Optional[str] = None, request_id: Optional[str] = None,
                  without_id: bool = False) -> Optional[int]:
    """
    Index of the most recent record matching the counterparty, and the status / id
    when given. without_id restricts the match to legacy records that carry no id.
    """
    for i in range(len(records) - 1, -1, -1):
        record = records[i]
        if record.get(key) != user_id:
            continue
        if status is not None and record.get("status") != status:
            continue
        if request_id is not None and record.get("request_id") != request_id:
            continue
        if without_id and record.get("request_id"):
            continue
        return i
    return None

def _next_sequence(from_id: str, to_id: str, *sides: List[dict]) -> int:
    """
    1 + the highest sequence already used for this pair on either copy.
    Counting records as well covers legacy entries stored without an id.
    """
    prefix = f"{from_id}:{to_id}:"
    highest = 0
    for records in sides:
        pair = [r for r in records if r.get("from_id", from_id) == from_id and r.get("to_id", to_id) == to_id]
        highest = max(highest, len(pair))
        for record in pair:
            request_id = record.get("request_id") or ""
            if request_id.startswith(prefix) and request_id[len(prefix):].isdigit():
                highest = max(highest, int(request_id[len(prefix):]))
    return highest + 1

def _with_status(records: List[dict], index: int, status: str) -> List[dict]:
    updated = list(records)
    updated[index] = {**records[index], "status": status}
    return updated

def _with_peer(connections: List[str], peer: str) -> Tuple[List[str], bool]:
    if peer in connections:
        return list(connections), False
    return list(connections) + [peer], True


class ConnectionRequestManager:
    """
    Send / respond / list for connection requests. Every request lives twice,
    once on each user's document, and both rows are written in one transaction.
    Precondition violations come back as results; nothing here raises to the caller.
    """

    def __init__(self, directory: UserDirectory, sink):
        self.directory = directory
        self.sink = sink

    async def _run(self, operation, *args) -> ActionResult:
        try:
            result, notifications = await operation(*args)
            if result.ok:
                await self.directory.commit()
            else:
                await self.directory.rollback()
        except SQLAlchemyError:
            logger.exception("[Connections] store error in %s%s", operation.__name__, args)
            await self.directory.rollback()
            return _fail(ErrorKind.STORE, "Server error")

        for channel, event_name, payload in notifications:
            await self.sink.publish(channel, event_name, payload)
        return result

    # --- send ---

    async def send_request(self, from_id: str, to_id: str, context=None) -> ActionResult:
        return await self._run(self._send, normalize_id(from_id), normalize_id(to_id), context)

    async def _send(self, from_id: str, to_id: str, context) -> Tuple[ActionResult, List[Notification]]:
        invalid = _check_pair(from_id, to_id)
        if invalid:
            return invalid, []
        if from_id == to_id:
            return _fail(ErrorKind.VALIDATION, "Cannot send request to yourself"), []

        users = await self.directory.find_for_update([from_id, to_id])
        sender, receiver = users.get(from_id), users.get(to_id)
        if not sender or not receiver:
            return _fail(ErrorKind.NOT_FOUND, "User not found"), []

        if to_id in (sender.connections or []) or from_id in (receiver.connections or []):
            return _fail(ErrorKind.CONFLICT, "Already connected"), []

        outgoing_requests = list(sender.outgoing_requests or [])
        incoming_requests = list(receiver.incoming_requests or [])

        if _latest_index(outgoing_requests, "to_id", to_id, status=PENDING) is not None:
            return _fail(ErrorKind.CONFLICT, "Request already sent"), []

        # an earlier request may exist only on the receiver's side
        if _latest_index(incoming_requests, "from_id", from_id, status=PENDING) is not None:
            return _fail(ErrorKind.CONFLICT, "Request already pending"), []

        # either copy may be the only surviving one, so both lists reserve numbers
        sequence = _next_sequence(from_id, to_id, outgoing_requests, incoming_requests)
        request_id = f"{from_id}:{to_id}:{sequence}"
        created_at = datetime.now(timezone.utc).isoformat()
        base = {
            "request_id": request_id,
            "from_id": from_id,
            "to_id": to_id,
            "context": context,
            "status": PENDING,
            "created_at": created_at,
        }
        incoming = {**base, "counterparty_name": sender.display_name}
        outgoing = {**base, "counterparty_name": receiver.display_name}

        await self.directory.update(to_id, {"incoming_requests": incoming_requests + [incoming]})
        await self.directory.update(from_id, {"outgoing_requests": outgoing_requests + [outgoing]})

        logger.info("[Connections] %s sent request %s", from_id, request_id)
        result = ActionResult(ok=True, message="Request sent", request_id=request_id)
        return result, [(to_id, REQUEST_RECEIVED, incoming)]

    # --- respond ---

    async def respond_request(self, to_id: str, from_id: str, action: str) -> ActionResult:
        return await self._run(self._respond, normalize_id(to_id), normalize_id(from_id), action)

    async def _respond(self, to_id: str, from_id: str, action: str) -> Tuple[ActionResult, List[Notification]]:
        invalid = _check_pair(to_id, from_id)
        if invalid:
            return invalid, []
        if action not in ACTION_STATUS:
            return _fail(ErrorKind.VALIDATION, f"Invalid action {action!r}, expected 'accept' or 'reject'"), []
        if to_id == from_id:
            return _fail(ErrorKind.VALIDATION, "Cannot respond to your own request"), []

        users = await self.directory.find_for_update([to_id, from_id])
        receiver, sender = users.get(to_id), users.get(from_id)
        if not receiver or not sender:
            return _fail(ErrorKind.NOT_FOUND, "Users not found"), []

        status = ACTION_STATUS[action].value
        incoming_requests = list(receiver.incoming_requests or [])
        outgoing_requests = list(sender.outgoing_requests or [])

        incoming_idx = _latest_index(incoming_requests, "from_id", from_id, status=PENDING)
        request_id = incoming_requests[incoming_idx].get("request_id") if incoming_idx is not None else None

        # records with an id only pair with their twin; counterparty matching is for id-less records
        if incoming_idx is None:
            outgoing_idx = _latest_index(outgoing_requests, "to_id", to_id, status=PENDING)
            if outgoing_idx is not None:
                request_id = outgoing_requests[outgoing_idx].get("request_id")
        elif request_id:
            outgoing_idx = _latest_index(outgoing_requests, "to_id", to_id, status=PENDING, request_id=request_id)
            if outgoing_idx is None:
                outgoing_idx = _latest_index(outgoing_requests, "to_id", to_id, status=PENDING, without_id=True)
        else:
            outgoing_idx = _latest_index(outgoing_requests, "to_id", to_id, status=PENDING)

        if incoming_idx is None and outgoing_idx is None:
            return await self._reapply(receiver, sender, status, incoming_requests, outgoing_requests)

        partial = incoming_idx is None or outgoing_idx is None
        if partial:
            logger.warning(
                "[Connections] request %s -> %s found on one side only (incoming=%s, outgoing=%s)",
                from_id, to_id, incoming_idx is not None, outgoing_idx is not None,
            )

        receiver_patch = {}
        sender_patch = {}
        if incoming_idx is not None:
            receiver_patch["incoming_requests"] = _with_status(incoming_requests, incoming_idx, status)
        if outgoing_idx is not None:
            sender_patch["outgoing_requests"] = _with_status(outgoing_requests, outgoing_idx, status)

        if status == RequestStatus.ACCEPTED.value:
            receiver_patch["connections"], _ = _with_peer(receiver.connections or [], from_id)
            sender_patch["connections"], _ = _with_peer(sender.connections or [], to_id)

        if receiver_patch:
            await self.directory.update(to_id, receiver_patch)
        if sender_patch:
            await self.directory.update(from_id, sender_patch)

        logger.info("[Connections] %s %s request from %s", to_id, status, from_id)
        message = f"Request {status}"
        if partial:
            message += " (counterpart record missing)"
        notification = {
            "request_id": request_id,
            "from_id": from_id,
            "to_id": to_id,
            "counterparty_name": receiver.display_name,
            "status": status,
        }
        result = ActionResult(ok=True, message=message, request_id=request_id, partial=partial)
        return result, [(from_id, REQUEST_RESPONDED, notification)]

    async def _reapply(self, receiver, sender, status, incoming_requests, outgoing_requests):
        """No pending record on either side: succeed only if the last answer was the same one."""
        incoming_idx = _latest_index(incoming_requests, "from_id", sender.email)
        outgoing_idx = _latest_index(outgoing_requests, "to_id", receiver.email)
        if incoming_idx is not None:
            latest = incoming_requests[incoming_idx]
        elif outgoing_idx is not None:
            latest = outgoing_requests[outgoing_idx]
        else:
            latest = None

        if latest is None or latest.get("status") != status:
            return _fail(ErrorKind.CONFLICT, "No pending request found"), []

        if status == RequestStatus.ACCEPTED.value:
            receiver_connections, receiver_added = _with_peer(receiver.connections or [], sender.email)
            sender_connections, sender_added = _with_peer(sender.connections or [], receiver.email)
            if receiver_added:
                await self.directory.update(receiver.email, {"connections": receiver_connections})
            if sender_added:
                await self.directory.update(sender.email, {"connections": sender_connections})

        result = ActionResult(ok=True, message=f"Request already {status}", request_id=latest.get("request_id"))
        return result, []

    # --- reads ---

    async def list_requests(self, user_id: str) -> RequestListResult:
        user_id = normalize_id(user_id)
        if not user_id:
            return RequestListResult(ok=False, error=ErrorKind.VALIDATION, message="Missing email")
        try:
            user = await self.directory.find(user_id)
        except SQLAlchemyError:
            logger.exception("[Connections] store error listing requests for %s", user_id)
            return RequestListResult(ok=False, error=ErrorKind.STORE, message="Server error")
        if not user:
            return RequestListResult(ok=False, error=ErrorKind.NOT_FOUND, message="User not found")

        try:
            incoming = [ConnectionRequest.model_validate(r) for r in user.incoming_requests or []]
            outgoing = [ConnectionRequest.model_validate(r) for r in user.outgoing_requests or []]
        except ValidationError as e:
            logger.error("[Connections] malformed request record on %s: %s", user_id, e)
            return RequestListResult(ok=False, error=ErrorKind.STORE, message="Stored request records are malformed")
        return RequestListResult(ok=True, incoming=incoming, outgoing=outgoing)

    async def list_connections(self, user_id: str) -> ConnectionListResult:
        user_id = normalize_id(user_id)
        if not user_id:
            return ConnectionListResult(ok=False, error=ErrorKind.VALIDATION, message="Missing email")
        try:
            user = await self.directory.find(user_id)
        except SQLAlchemyError:
            logger.exception("[Connections] store error listing connections for %s", user_id)
            return ConnectionListResult(ok=False, error=ErrorKind.STORE, message="Server error")
        if not user:
            return ConnectionListResult(ok=False, error=ErrorKind.NOT_FOUND, message="User not found")
        return ConnectionListResult(ok=True, connections=list(user.connections or []))

    async def connection_status(self, a: str, b: str) -> ConnectionStatusResult:
        a, b = normalize_id(a), normalize_id(b)
        if not a or not b:
            return ConnectionStatusResult(ok=False, error=ErrorKind.VALIDATION, message="Missing emails")
        try:
            first = await self.directory.find(a)
            second = await self.directory.find(b)
        except SQLAlchemyError:
            logger.exception("[Connections] store error checking %s <-> %s", a, b)
            return ConnectionStatusResult(ok=False, error=ErrorKind.STORE, message="Server error")
        if not first or not second:
            return ConnectionStatusResult(ok=False, error=ErrorKind.NOT_FOUND, message="User not found")

        forward = b in (first.connections or [])
        backward = a in (second.connections or [])
        if forward != backward:
            logger.warning("[Connections] asymmetric connection %s <-> %s", a, b)
        return ConnectionStatusResult(ok=True, connected=forward and backward)

    async def are_connected(self, a: str, b: str) -> bool:
        """True only when each user holds the other in their connection set."""
        status = await self.connection_status(a, b)
        return status.ok and status.connected

    # --- repair ---

    async def reconcile(self) -> ReconcileReport:
        """
        Repairs what a half-applied write can leave behind: a terminal status on
        one copy of a request with the twin still pending, and one-sided
        connections. Store errors propagate after rollback.
        """
        try:
            users = await self.directory.all()
            report = ReconcileReport(users_scanned=len(users))
            by_email = {u.email: u for u in users}
            incoming = {u.email: list(u.incoming_requests or []) for u in users}
            outgoing = {u.email: list(u.outgoing_requests or []) for u in users}
            connections = {u.email: list(u.connections or []) for u in users}
            dirty = set()

            for receiver_email in by_email:
                for i, record in enumerate(incoming[receiver_email]):
                    request_id = record.get("request_id")
                    sender_email = record.get("from_id")
                    if not request_id or sender_email not in by_email:
                        continue
                    j = _latest_index(outgoing[sender_email], "to_id", receiver_email, request_id=request_id)
                    if j is None:
                        continue
                    # both copies of one request are written with the same timestamp
                    if record.get("created_at") != outgoing[sender_email][j].get("created_at"):
                        logger.warning("[Reconcile] request id %s reused by different requests, skipped", request_id)
                        continue
                    mine, theirs = record.get("status"), outgoing[sender_email][j].get("status")
                    if mine == theirs:
                        continue
                    if mine == PENDING:
                        incoming[receiver_email] = _with_status(incoming[receiver_email], i, theirs)
                        dirty.add(receiver_email)
                    elif theirs == PENDING:
                        outgoing[sender_email] = _with_status(outgoing[sender_email], j, mine)
                        dirty.add(sender_email)
                    else:
                        logger.warning("[Reconcile] request %s has conflicting statuses %s / %s",
                                       request_id, mine, theirs)
                        continue
                    report.requests_repaired += 1
                    if RequestStatus.ACCEPTED.value in (mine, theirs):
                        for owner, peer in ((receiver_email, sender_email), (sender_email, receiver_email)):
                            connections[owner], added = _with_peer(connections[owner], peer)
                            if added:
                                report.connections_repaired += 1
                                dirty.add(owner)

            for email in by_email:
                for peer in list(connections[email]):
                    if peer not in by_email:
                        continue
                    connections[peer], added = _with_peer(connections[peer], email)
                    if added:
                        report.connections_repaired += 1
                        dirty.add(peer)

            for email in sorted(dirty):
                await self.directory.update(email, {
                    "incoming_requests": incoming[email],
                    "outgoing_requests": outgoing[email],
                    "connections": connections[email],
                })
            await self.directory.commit()
        except SQLAlchemyError:
            logger.exception("[Reconcile] store error, nothing repaired")
            await self.directory.rollback()
            raise

        logger.info("[Reconcile] %s", report.model_dump())
        return report
