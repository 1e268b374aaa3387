"""
Vendor-request negotiation workflow.

Each event embeds one sub-document per organizer -> vendor -> service
negotiation. A request starts ``pending``; the vendor (or organizer) moves it
to ``accepted`` or ``declined``, and an accepted request can later be marked
``completed``. Declined and completed requests are final.
"""
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

from database import to_object_id, utcnow
from errors import DuplicateRequest, Forbidden, NotFound, ValidationError
from schemas import VendorRequest

logger = logging.getLogger(__name__)

TRANSITIONS = {
    "pending": {"accepted", "declined"},
    "accepted": {"completed"},
    "declined": set(),
    "completed": set(),
}


def can_transition(current: str, new: str) -> bool:
    if new not in TRANSITIONS:
        return False
    return new == current or new in TRANSITIONS.get(current, set())


def find_request(event: Dict[str, Any], request_id: ObjectId) -> Optional[Dict[str, Any]]:
    for vr in event.get("vendor_requests", []):
        if vr.get("_id") == request_id:
            return vr
    return None


def is_event_participant(event: Dict[str, Any], user_id: ObjectId) -> bool:
    if event.get("organizer") == user_id:
        return True
    return any(vr.get("vendor") == user_id for vr in event.get("vendor_requests", []))


def _load_event(db: Database, event_id) -> Dict[str, Any]:
    event = db["event"].find_one({"_id": to_object_id(event_id, "event id")})
    if not event:
        raise NotFound("Event not found")
    return event


def get_event_for_caller(db: Database, caller_id, event_id) -> Dict[str, Any]:
    """Return the event if the caller organizes it or is a vendor on one of its requests."""
    event = _load_event(db, event_id)
    if not is_event_participant(event, to_object_id(caller_id)):
        raise Forbidden("Access denied")
    return event


def list_events_for_caller(db: Database, caller_id, caller_role: str) -> List[Dict[str, Any]]:
    caller = to_object_id(caller_id)
    if caller_role == "organizer":
        query = {"organizer": caller}
    else:
        query = {"vendor_requests.vendor": caller}
    return list(db["event"].find(query).sort("created_at", -1))


def create_vendor_request(
    db: Database,
    caller_id,
    caller_role: str,
    event_id,
    vendor_id,
    service: str,
    requested_price: Optional[float] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    if caller_role != "organizer":
        raise Forbidden("Only organizers can send vendor requests")
    event = _load_event(db, event_id)
    if event["organizer"] != to_object_id(caller_id):
        raise Forbidden("Access denied")

    vendor_oid = to_object_id(vendor_id, "vendor id")
    for vr in event.get("vendor_requests", []):
        if vr.get("vendor") == vendor_oid and vr.get("service") == service:
            raise DuplicateRequest("Request already exists for this vendor and service")

    if not db["user"].find_one({"_id": vendor_oid, "role": "vendor"}):
        raise NotFound("Vendor not found")

    request = VendorRequest(
        vendor=vendor_oid,
        service=service,
        requested_price=requested_price,
        notes=notes,
        requested_at=utcnow(),
    ).model_dump(by_alias=True)

    # the pair check is repeated in the write filter; a concurrent create matches nothing
    result = db["event"].update_one(
        {
            "_id": event["_id"],
            "$nor": [{"vendor_requests": {"$elemMatch": {"vendor": vendor_oid, "service": service}}}],
        },
        {"$push": {"vendor_requests": request}, "$set": {"updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        if not db["event"].find_one({"_id": event["_id"]}, {"_id": 1}):
            raise NotFound("Event not found")
        raise DuplicateRequest("Request already exists for this vendor and service")
    logger.info("Vendor request %s created on event %s for vendor %s (%s)",
                request["_id"], event["_id"], vendor_oid, service)
    return request


def _raise_stale_update(db: Database, event_oid: ObjectId, request_oid: ObjectId, status: Optional[str]):
    """The guarded write matched nothing: report what the stored document holds now."""
    event = db["event"].find_one({"_id": event_oid})
    if event is None:
        raise NotFound("Event not found")
    request = find_request(event, request_oid)
    if request is None:
        raise NotFound("Vendor request not found")
    current = request.get("status", "pending")
    logger.warning("Vendor request %s on event %s changed concurrently (now '%s')",
                   request_oid, event_oid, current)
    raise ValidationError(f"Cannot move vendor request from '{current}' to '{status}'")


def update_vendor_request(
    db: Database,
    caller_id,
    caller_role: str,
    event_id,
    request_id,
    status: Optional[str] = None,
    quoted_price: Optional[float] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Apply a partial update to one vendor request.

    Vendors may only touch requests addressed to them; organizers only
    requests on events they own. Only the fields given (not None) are
    written, and status changes must follow TRANSITIONS.
    """
    event = _load_event(db, event_id)
    request_oid = to_object_id(request_id, "request id")
    request = find_request(event, request_oid)
    if request is None:
        raise NotFound("Vendor request not found")

    caller = to_object_id(caller_id)
    if caller_role == "vendor":
        allowed = request.get("vendor") == caller
    elif caller_role == "organizer":
        allowed = event.get("organizer") == caller
    else:
        allowed = False
    if not allowed:
        raise Forbidden("Access denied")

    changes: Dict[str, Any] = {}
    current = request.get("status", "pending")
    if status is not None:
        if not can_transition(current, status):
            raise ValidationError(f"Cannot move vendor request from '{current}' to '{status}'")
        changes["status"] = status
    if quoted_price is not None:
        if quoted_price < 0:
            raise ValidationError("quoted_price must be non-negative")
        changes["quoted_price"] = quoted_price
    if notes is not None:
        changes["notes"] = notes

    if changes:
        update = {f"vendor_requests.$.{key}": value for key, value in changes.items()}
        update["updated_at"] = utcnow()
        match: Dict[str, Any] = {"_id": request_oid}
        if status is not None:
            match["status"] = current
        result = db["event"].update_one(
            {"_id": event["_id"], "vendor_requests": {"$elemMatch": match}},
            {"$set": update},
        )
        if result.matched_count == 0:
            _raise_stale_update(db, event["_id"], request_oid, status)
        logger.info("Vendor request %s on event %s updated by %s %s: %s",
                    request_oid, event["_id"], caller_role, caller, sorted(changes))
    request.update(changes)
    return request
