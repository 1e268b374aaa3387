import logging
import os
import random
import re
import shutil
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, EmailStr, Field, model_validator
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import projections
import reviews
import workflow
from auth import (
    find_user_by_email,
    get_current_user,
    get_optional_user,
    hash_password,
    public_user,
    token_for_user,
    verify_password,
)
from budget import budget_recommendations
from config import settings
from database import create_document, db, ensure_indexes, get_db, serialize_doc, to_object_id, utcnow
from errors import DuplicateRequest, Forbidden, NotFound, ValidationError, register_error_handlers
from schemas import (
    Attendees,
    BudgetCategory,
    Event,
    EventDates,
    EventLocation,
    EventStatus,
    EventType,
    FinancialLiteracy,
    Location,
    Message,
    MessageAttachment,
    MessageType,
    OrganizationType,
    OrganizerUser,
    PortfolioItem,
    Pricing,
    Profile,
    Quotation,
    RequestStatus,
    Role,
    VendorCategory,
    VendorUser,
    VenueType,
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

os.makedirs(settings.UPLOAD_DIR, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s %s", settings.APP_NAME, settings.APP_VERSION)
    try:
        ensure_indexes(db)
    except PyMongoError as e:
        logger.error("Could not ensure indexes: %s", e)
    yield
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description="Connect event organizers with vendors and venues across the UAE.",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


def contains(text: str) -> Dict[str, Any]:
    """Case-insensitive substring match; user input is never treated as a pattern."""
    return {"$regex": re.escape(text), "$options": "i"}


@app.get("/")
def root():
    return {"name": settings.APP_NAME, "status": "ok"}


@app.get("/api/health")
def health():
    return {
        "success": True,
        "message": f"{settings.APP_NAME} is running",
        "timestamp": utcnow().isoformat(),
        "version": settings.APP_VERSION,
    }


# =============== AUTH ===============
class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role
    location: Location
    # vendor
    business_name: Optional[str] = None
    services: List[str] = Field(default_factory=list)
    category: Optional[VendorCategory] = None
    # organizer
    organization_type: Optional[OrganizationType] = None

    @model_validator(mode="after")
    def check_role_fields(self):
        if self.role == "vendor" and not self.business_name:
            raise ValueError("business_name is required for vendors")
        return self


class LoginIn(BaseModel):
    email: EmailStr
    password: str


def _auth_response(user: Dict[str, Any], message: str) -> Dict[str, Any]:
    return {
        "success": True,
        "message": message,
        "access_token": token_for_user(user),
        "token_type": "bearer",
        "user": public_user(user),
    }


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterIn, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if find_user_by_email(db, email):
        raise DuplicateRequest("Email already registered")

    common = dict(
        name=payload.name,
        email=email,
        hashed_password=hash_password(payload.password),
        location=payload.location,
    )
    if payload.role == "vendor":
        user = VendorUser(
            **common,
            business_name=payload.business_name,
            services=payload.services,
            category=payload.category or "other",
        )
    else:
        user = OrganizerUser(**common, organization_type=payload.organization_type)

    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise DuplicateRequest("Email already registered")
    logger.info("Registered %s %s", payload.role, user_id)
    return _auth_response(db["user"].find_one({"_id": to_object_id(user_id)}), "User registered successfully")


@app.post("/api/auth/login")
def login(payload: LoginIn, db: Database = Depends(get_db)):
    user = find_user_by_email(db, payload.email)
    if not user or not verify_password(payload.password, user.get("hashed_password", "")):
        raise HTTPException(status_code=400, detail="Incorrect email or password")
    if not user.get("is_active", True):
        raise Forbidden("Account is deactivated")
    return _auth_response(user, "Login successful")


# =============== USERS ===============
class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    location: Optional[Location] = None
    profile: Optional[Profile] = None
    # vendor
    business_name: Optional[str] = None
    services: Optional[List[str]] = None
    category: Optional[VendorCategory] = None
    pricing: Optional[Pricing] = None
    portfolio: Optional[List[PortfolioItem]] = None
    # organizer
    organization_type: Optional[OrganizationType] = None
    financial_literacy: Optional[FinancialLiteracy] = None


VENDOR_ONLY_FIELDS = {"business_name", "services", "category", "pricing", "portfolio"}
ORGANIZER_ONLY_FIELDS = {"organization_type", "financial_literacy"}


@app.get("/api/users/profile")
def get_profile(current_user: dict = Depends(get_current_user)):
    return {"success": True, "user": current_user}


@app.put("/api/users/profile")
def update_profile(payload: ProfileUpdate, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    updates = payload.model_dump(exclude_unset=True)
    skip = ORGANIZER_ONLY_FIELDS if current_user["role"] == "vendor" else VENDOR_ONLY_FIELDS
    updates = {k: v for k, v in updates.items() if k not in skip}
    user_id = to_object_id(current_user["id"])
    if updates:
        updates["updated_at"] = utcnow()
        db["user"].update_one({"_id": user_id}, {"$set": updates})
    return {"success": True, "user": public_user(db["user"].find_one({"_id": user_id}))}


@app.delete("/api/users/profile")
def deactivate_profile(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    db["user"].update_one(
        {"_id": to_object_id(current_user["id"])},
        {"$set": {"is_active": False, "updated_at": utcnow()}},
    )
    logger.info("User %s deactivated", current_user["id"])
    return {"success": True, "message": "Account deactivated"}


# =============== VENDOR DISCOVERY ===============
def _vendor_query(category=None, emirate=None, price_min=None, price_max=None, search=None) -> Dict[str, Any]:
    query: Dict[str, Any] = {"role": "vendor", "is_active": True}
    if category:
        query["category"] = category
    if emirate:
        query["location.emirate"] = emirate
    if price_min is not None:
        query["pricing.price_range.max"] = {"$gte": price_min}
    if price_max is not None:
        query["pricing.price_range.min"] = {"$lte": price_max}
    if search:
        query["$or"] = [
            {"name": contains(search)},
            {"business_name": contains(search)},
            {"services": contains(search)},
        ]
    return query


@app.get("/api/vendors")
def list_vendors(
    category: Optional[VendorCategory] = None,
    emirate: Optional[str] = None,
    price_min: Optional[float] = None,
    price_max: Optional[float] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query = _vendor_query(category, emirate, price_min, price_max, search)
    cursor = db["user"].find(query, {"hashed_password": 0}).sort([("rating.average", -1), ("created_at", -1)])
    return {"success": True, "vendors": [serialize_doc(v) for v in cursor]}


@app.get("/api/vendors/{vendor_id}")
def get_vendor(vendor_id: str, db: Database = Depends(get_db)):
    vendor = db["user"].find_one({"_id": to_object_id(vendor_id, "vendor id"), "role": "vendor"}, {"hashed_password": 0})
    if not vendor:
        raise NotFound("Vendor not found")
    return {"success": True, "vendor": serialize_doc(vendor)}


# =============== EVENTS ===============
class EventIn(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    event_type: EventType
    date: EventDates
    location: EventLocation = Field(default_factory=EventLocation)
    attendees: Attendees
    total_budget: float = Field(..., ge=0)
    budget_categories: List[BudgetCategory] = Field(default_factory=list)
    status: EventStatus = "planning"


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    event_type: Optional[EventType] = None
    date: Optional[EventDates] = None
    location: Optional[EventLocation] = None
    attendees: Optional[Attendees] = None
    total_budget: Optional[float] = Field(None, ge=0)
    budget_categories: Optional[List[BudgetCategory]] = None
    status: Optional[EventStatus] = None


class NoteIn(BaseModel):
    content: str = Field(..., min_length=1)


class AttachmentIn(BaseModel):
    filename: str
    url: str


def _warn_if_overallocated(event_id, total_budget: float, categories: List[Dict[str, Any]]) -> None:
    allocated = sum(c.get("allocated", 0) or 0 for c in categories)
    if allocated > total_budget:
        logger.warning("Event %s allocates %.2f across categories but total budget is %.2f",
                       event_id, allocated, total_budget)


@app.post("/api/events", status_code=201)
def create_event(payload: EventIn, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if current_user["role"] != "organizer":
        raise Forbidden("Only organizers can create events")
    event = Event(organizer=to_object_id(current_user["id"]), **payload.model_dump())
    event_id = create_document(db, "event", event)
    _warn_if_overallocated(event_id, payload.total_budget, [c.model_dump() for c in payload.budget_categories])
    logger.info("Event %s created by %s", event_id, current_user["id"])
    return {"success": True, "event": serialize_doc(db["event"].find_one({"_id": to_object_id(event_id)}))}


@app.get("/api/events")
def list_events(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    events = workflow.list_events_for_caller(db, current_user["id"], current_user["role"])
    return {"success": True, "events": [serialize_doc(e) for e in events]}


@app.get("/api/events/{event_id}")
def get_event(event_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    event = workflow.get_event_for_caller(db, current_user["id"], event_id)
    return {"success": True, "event": serialize_doc(event)}


@app.put("/api/events/{event_id}")
def update_event(event_id: str, payload: EventUpdate, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    oid = to_object_id(event_id, "event id")
    event = db["event"].find_one({"_id": oid})
    if not event:
        raise NotFound("Event not found")
    if event["organizer"] != to_object_id(current_user["id"]):
        raise Forbidden("Access denied")

    updates = payload.model_dump(exclude_unset=True)
    if updates:
        updates["updated_at"] = utcnow()
        db["event"].update_one({"_id": oid}, {"$set": updates})
    event = db["event"].find_one({"_id": oid})
    _warn_if_overallocated(oid, event.get("total_budget", 0), event.get("budget_categories", []))
    return {"success": True, "event": serialize_doc(event)}


@app.post("/api/events/{event_id}/notes", status_code=201)
def add_event_note(event_id: str, payload: NoteIn, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    event = workflow.get_event_for_caller(db, current_user["id"], event_id)
    note = {"content": payload.content, "created_by": to_object_id(current_user["id"]), "created_at": utcnow()}
    db["event"].update_one({"_id": event["_id"]}, {"$push": {"notes": note}, "$set": {"updated_at": utcnow()}})
    return {"success": True, "note": serialize_doc(note)}


@app.post("/api/events/{event_id}/attachments", status_code=201)
def add_event_attachment(event_id: str, payload: AttachmentIn, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    event = workflow.get_event_for_caller(db, current_user["id"], event_id)
    attachment = {
        "filename": payload.filename,
        "url": payload.url,
        "uploaded_by": to_object_id(current_user["id"]),
        "uploaded_at": utcnow(),
    }
    db["event"].update_one({"_id": event["_id"]}, {"$push": {"attachments": attachment}, "$set": {"updated_at": utcnow()}})
    return {"success": True, "attachment": serialize_doc(attachment)}


# =============== VENDOR REQUESTS ===============
class VendorRequestIn(BaseModel):
    vendor_id: str
    service: str = Field(..., min_length=1)
    requested_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class VendorRequestUpdate(BaseModel):
    status: Optional[RequestStatus] = None
    quoted_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


@app.post("/api/events/{event_id}/vendor-requests")
def create_vendor_request(event_id: str, payload: VendorRequestIn, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    request = workflow.create_vendor_request(
        db,
        current_user["id"],
        current_user["role"],
        event_id,
        payload.vendor_id,
        payload.service,
        requested_price=payload.requested_price,
        notes=payload.notes,
    )
    return {"success": True, "message": "Vendor request sent successfully", "vendor_request": serialize_doc(request)}


@app.put("/api/events/{event_id}/vendor-requests/{request_id}")
def update_vendor_request(event_id: str, request_id: str, payload: VendorRequestUpdate, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    request = workflow.update_vendor_request(
        db,
        current_user["id"],
        current_user["role"],
        event_id,
        request_id,
        status=payload.status,
        quoted_price=payload.quoted_price,
        notes=payload.notes,
    )
    return {"success": True, "message": "Vendor request updated successfully", "vendor_request": serialize_doc(request)}


# =============== MESSAGES ===============
class MessageIn(BaseModel):
    recipient_id: str
    event_id: Optional[str] = None
    content: str = Field(..., min_length=1)
    message_type: MessageType = "text"
    quotation: Optional[Quotation] = None
    attachments: List[MessageAttachment] = Field(default_factory=list)


@app.post("/api/messages", status_code=201)
def send_message(payload: MessageIn, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    recipient = to_object_id(payload.recipient_id, "recipient id")
    if not db["user"].find_one({"_id": recipient}):
        raise NotFound("Recipient not found")
    message = Message(
        sender=to_object_id(current_user["id"]),
        recipient=recipient,
        event=to_object_id(payload.event_id, "event id") if payload.event_id else None,
        content=payload.content,
        message_type=payload.message_type,
        quotation=payload.quotation,
        attachments=payload.attachments,
    )
    message_id = create_document(db, "message", message)
    return {"success": True, "message": serialize_doc(db["message"].find_one({"_id": to_object_id(message_id)}))}


@app.get("/api/messages")
def list_messages(
    event_id: Optional[str] = None,
    recipient_id: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    me = to_object_id(current_user["id"])
    query: Dict[str, Any] = {"$or": [{"sender": me}, {"recipient": me}]}
    if event_id:
        query["event"] = to_object_id(event_id, "event id")
    if recipient_id:
        other = to_object_id(recipient_id, "recipient id")
        query["$and"] = [{"$or": [{"sender": me, "recipient": other}, {"sender": other, "recipient": me}]}]
    cursor = db["message"].find(query).sort("created_at", 1)
    return {"success": True, "messages": [serialize_doc(m) for m in cursor]}


@app.put("/api/messages/{message_id}/read")
def mark_message_read(message_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    oid = to_object_id(message_id, "message id")
    message = db["message"].find_one({"_id": oid})
    if not message:
        raise NotFound("Message not found")
    if message["recipient"] != to_object_id(current_user["id"]):
        raise Forbidden("Only the recipient can mark a message as read")
    if not message.get("is_read"):
        db["message"].update_one({"_id": oid}, {"$set": {"is_read": True, "read_at": utcnow()}})
    return {"success": True, "message": serialize_doc(db["message"].find_one({"_id": oid}))}


@app.get("/api/conversations")
def list_conversations(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    rows = projections.list_conversations(db, current_user["id"])
    return {"success": True, "conversations": serialize_doc(rows)}


# =============== VENUES ===============
@app.get("/api/venues")
def list_venues(
    emirate: Optional[str] = None,
    venue_type: Optional[VenueType] = None,
    min_capacity: Optional[int] = None,
    max_capacity: Optional[int] = None,
    price_min: Optional[float] = None,
    price_max: Optional[float] = None,
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {"is_active": True}
    if emirate:
        query["location.emirate"] = emirate
    if venue_type:
        query["venue_type"] = venue_type
    if min_capacity is not None:
        query["capacity.maximum"] = {"$gte": min_capacity}
    if max_capacity is not None:
        query["capacity.minimum"] = {"$lte": max_capacity}
    if price_min is not None or price_max is not None:
        price: Dict[str, Any] = {}
        if price_min is not None:
            price["$gte"] = price_min
        if price_max is not None:
            price["$lte"] = price_max
        query["pricing.base_price"] = price
    cursor = db["venue"].find(query).sort("rating.average", -1)
    return {"success": True, "venues": [serialize_doc(v) for v in cursor]}


@app.get("/api/venues/{venue_id}")
def get_venue(venue_id: str, db: Database = Depends(get_db)):
    venue = db["venue"].find_one({"_id": to_object_id(venue_id, "venue id")})
    if not venue:
        raise NotFound("Venue not found")
    return {"success": True, "venue": serialize_doc(venue)}


# =============== REVIEWS ===============
class ReviewIn(BaseModel):
    reviewee_id: str
    event_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    photos: List[str] = Field(default_factory=list)


class ReviewResponseIn(BaseModel):
    content: str = Field(..., min_length=1)


@app.post("/api/reviews", status_code=201)
def create_review(payload: ReviewIn, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    review = reviews.create_review(
        db,
        current_user["id"],
        payload.reviewee_id,
        payload.event_id,
        payload.rating,
        comment=payload.comment,
        photos=payload.photos,
    )
    return {"success": True, "review": serialize_doc(review)}


@app.get("/api/reviews/{user_id}")
def list_reviews(user_id: str, db: Database = Depends(get_db)):
    return {"success": True, "reviews": serialize_doc(reviews.list_reviews_for_user(db, user_id))}


@app.put("/api/reviews/{review_id}/response")
def respond_to_review(review_id: str, payload: ReviewResponseIn, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    review = reviews.respond_to_review(db, current_user["id"], review_id, payload.content)
    return {"success": True, "review": serialize_doc(review)}


# =============== FILE UPLOAD ===============
@app.post("/api/upload")
def upload_file(file: UploadFile = File(...), current_user: dict = Depends(get_current_user)):
    if not file.filename:
        raise ValidationError("No file uploaded")
    stored_name = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{Path(file.filename).suffix}"
    with open(Path(settings.UPLOAD_DIR) / stored_name, "wb") as out:
        shutil.copyfileobj(file.file, out)
    logger.info("User %s uploaded %s as %s", current_user["id"], file.filename, stored_name)
    return {
        "success": True,
        "filename": stored_name,
        "url": f"/uploads/{stored_name}",
        "original_name": file.filename,
    }


# =============== BUDGET & ANALYTICS ===============
@app.get("/api/budget-recommendations/{event_type}")
def get_budget_recommendations(
    event_type: str,
    total_budget: float,
    attendees: Optional[int] = None,
    current_user: dict = Depends(get_current_user),
):
    if total_budget < 0:
        raise ValidationError("total_budget must be non-negative")
    return {"success": True, **budget_recommendations(event_type, total_budget, attendees)}


@app.get("/api/analytics/dashboard")
def dashboard(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    analytics = projections.dashboard_analytics(db, current_user["id"], current_user["role"])
    return {"success": True, "analytics": analytics}


@app.get("/api/notifications")
def notifications(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    items = projections.list_notifications(db, current_user["id"], current_user["role"], settings.NOTIFICATION_LIMIT)
    return {"success": True, "notifications": serialize_doc(items)}


# =============== SEARCH ===============
@app.get("/api/search")
def search(
    q: Optional[str] = None,
    type: Optional[str] = None,
    emirate: Optional[str] = None,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    if not q:
        raise ValidationError("Search query required")
    results: Dict[str, Any] = {}

    if not type or type == "vendors":
        vendor_query = _vendor_query(emirate=emirate)
        vendor_query["$or"] = [
            {"name": contains(q)},
            {"business_name": contains(q)},
            {"services": contains(q)},
            {"category": contains(q)},
        ]
        cursor = db["user"].find(vendor_query, {"hashed_password": 0}).sort("rating.average", -1).limit(10)
        results["vendors"] = [serialize_doc(v) for v in cursor]

    if not type or type == "venues":
        venue_query: Dict[str, Any] = {
            "is_active": True,
            "$or": [
                {"name": contains(q)},
                {"description": contains(q)},
                {"venue_type": contains(q)},
            ],
        }
        if emirate:
            venue_query["location.emirate"] = emirate
        cursor = db["venue"].find(venue_query).sort("rating.average", -1).limit(10)
        results["venues"] = [serialize_doc(v) for v in cursor]

    if type == "events" and current_user and current_user["role"] == "organizer":
        cursor = db["event"].find({
            "organizer": to_object_id(current_user["id"]),
            "$or": [
                {"title": contains(q)},
                {"description": contains(q)},
                {"event_type": contains(q)},
            ],
        }).limit(10)
        results["events"] = [serialize_doc(e) for e in cursor]

    return {"success": True, "results": results}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
