"""
Read-only views derived from stored documents: conversation threads,
dashboard analytics and notifications. Nothing here is persisted.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from database import as_utc, to_object_id, utcnow
from schemas import EVENT_STATUSES

logger = logging.getLogger(__name__)

PARTICIPANT_FIELDS = {"name": 1, "role": 1, "business_name": 1, "profile.avatar": 1}
EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _participant_summary(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "_id": user["_id"],
        "name": user.get("name"),
        "role": user.get("role"),
        "business_name": user.get("business_name"),
        "avatar": (user.get("profile") or {}).get("avatar"),
    }


# =============== CONVERSATIONS ===============
def list_conversations(db: Database, caller_id) -> List[Dict[str, Any]]:
    """
    One row per counterparty: the latest message exchanged with them and how
    many of their messages the caller has not read yet. Newest thread first.
    """
    caller = to_object_id(caller_id)
    messages = db["message"].find(
        {"$or": [{"sender": caller}, {"recipient": caller}]}
    ).sort("created_at", -1)

    threads: Dict[Any, Dict[str, Any]] = {}
    for msg in messages:
        other = msg["recipient"] if msg["sender"] == caller else msg["sender"]
        thread = threads.get(other)
        if thread is None:
            thread = threads[other] = {"last_message": msg, "unread_count": 0}
        elif as_utc(msg["created_at"]) > as_utc(thread["last_message"]["created_at"]):
            thread["last_message"] = msg
        if msg["recipient"] == caller and not msg.get("is_read", False):
            thread["unread_count"] += 1

    if not threads:
        return []

    users = {
        u["_id"]: u
        for u in db["user"].find({"_id": {"$in": list(threads)}}, PARTICIPANT_FIELDS)
    }
    rows = []
    for other, thread in threads.items():
        user = users.get(other)
        if user is None:
            logger.debug("Dropping conversation with missing user %s", other)
            continue
        rows.append({
            "participant": _participant_summary(user),
            "last_message": thread["last_message"],
            "unread_count": thread["unread_count"],
        })
    rows.sort(key=lambda r: as_utc(r["last_message"]["created_at"]), reverse=True)
    return rows


# =============== ANALYTICS ===============
def organizer_analytics(db: Database, organizer_id, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    events = list(db["event"].find({"organizer": to_object_id(organizer_id)}))

    total_events = len(events)
    total_budget = sum(e.get("total_budget", 0) or 0 for e in events)
    total_spent = sum(
        sum(cat.get("spent", 0) or 0 for cat in e.get("budget_categories", []))
        for e in events
    )
    events_by_status = {status: 0 for status in EVENT_STATUSES}
    for e in events:
        status = e.get("status", "planning")
        events_by_status[status] = events_by_status.get(status, 0) + 1

    return {
        "total_events": total_events,
        "completed_events": events_by_status["completed"],
        "upcoming_events": sum(1 for e in events if as_utc(e["date"]["start"]) > now),
        "total_budget": total_budget,
        "total_spent": total_spent,
        "savings": total_budget - total_spent,
        "average_event_budget": total_budget / total_events if total_events else 0,
        "events_by_status": events_by_status,
    }


def vendor_analytics(db: Database, vendor_id) -> Dict[str, Any]:
    vendor = to_object_id(vendor_id)
    events = list(db["event"].find({"vendor_requests.vendor": vendor}))

    own = [vr for e in events for vr in e.get("vendor_requests", []) if vr.get("vendor") == vendor]
    accepted = sum(1 for vr in own if vr.get("status") == "accepted")
    completed = sum(1 for vr in own if vr.get("status") == "completed")
    earnings = sum(vr["final_price"] for vr in own if vr.get("final_price"))

    ratings = [r["rating"] for r in db["review"].find({"reviewee": vendor}, {"rating": 1})]

    return {
        "total_requests": len(own),
        "accepted_requests": accepted,
        "completed_jobs": completed,
        "total_earnings": earnings,
        "average_rating": sum(ratings) / len(ratings) if ratings else 0,
        "total_reviews": len(ratings),
        # Divides by matched events, not requests; can exceed 100.
        "response_rate": accepted / len(events) * 100 if events else 0,
    }


def dashboard_analytics(db: Database, caller_id, caller_role: str) -> Dict[str, Any]:
    if caller_role == "organizer":
        return organizer_analytics(db, caller_id)
    return vendor_analytics(db, caller_id)


# =============== NOTIFICATIONS ===============
def list_notifications(db: Database, caller_id, caller_role: str, limit: int = 20) -> List[Dict[str, Any]]:
    caller = to_object_id(caller_id)
    notifications = []

    if caller_role == "organizer":
        events = list(db["event"].find({"organizer": caller}))
        vendor_ids = {vr["vendor"] for e in events for vr in e.get("vendor_requests", [])}
        vendors = {
            u["_id"]: u
            for u in db["user"].find({"_id": {"$in": list(vendor_ids)}}, {"name": 1, "business_name": 1})
        }
        for event in events:
            for vr in event.get("vendor_requests", []):
                if vr.get("status") == "accepted" and vr.get("quoted_price"):
                    vendor = vendors.get(vr["vendor"], {})
                    label = vendor.get("business_name") or vendor.get("name") or "A vendor"
                    notifications.append({
                        "type": "vendor_response",
                        "message": f"{label} responded to your request for {event['title']}",
                        "event_id": event["_id"],
                        "vendor_id": vr["vendor"],
                        "created_at": vr.get("requested_at"),
                    })
    else:
        events = list(db["event"].find({"vendor_requests.vendor": caller}))
        organizer_ids = {e["organizer"] for e in events}
        organizers = {
            u["_id"]: u for u in db["user"].find({"_id": {"$in": list(organizer_ids)}}, {"name": 1})
        }
        for event in events:
            organizer = organizers.get(event["organizer"], {})
            for vr in event.get("vendor_requests", []):
                if vr.get("vendor") == caller and vr.get("status") == "pending":
                    notifications.append({
                        "type": "new_request",
                        "message": f"New event request from {organizer.get('name', 'an organizer')} for {event['title']}",
                        "event_id": event["_id"],
                        "organizer_id": event["organizer"],
                        "created_at": vr.get("requested_at"),
                    })

    notifications.sort(key=lambda n: as_utc(n["created_at"]) or EARLIEST, reverse=True)
    return notifications[:limit]
