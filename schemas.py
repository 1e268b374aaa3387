"""
Database Schemas for PocketWatcher

Each Pydantic model represents a MongoDB collection (or an embedded
sub-document). Collection name is the lowercase of the class name, except
for the user variants which all live in "user".

All location-bound documents carry an emirate from the seven UAE emirates.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

Emirate = Literal["Dubai", "Abu Dhabi", "Sharjah", "Ajman", "Ras Al Khaimah", "Fujairah", "Umm Al Quwain"]
Role = Literal["organizer", "vendor"]
VendorCategory = Literal[
    "catering", "decoration", "photography", "entertainment", "venue",
    "transportation", "flowers", "audio_visual", "security", "other",
]
OrganizationType = Literal["student", "freelancer", "sme_owner", "individual"]
LiteracyLevel = Literal["basic", "intermediate", "advanced"]
EventType = Literal["wedding", "corporate", "birthday", "conference", "seminar", "networking", "graduation", "other"]
EventStatus = Literal["planning", "confirmed", "ongoing", "completed", "cancelled"]
RequestStatus = Literal["pending", "accepted", "declined", "completed"]
MessageType = Literal["text", "quote", "image", "document"]
VenueType = Literal["hotel", "restaurant", "hall", "outdoor", "beach", "mall", "office", "home", "other"]
PriceType = Literal["per_hour", "per_day", "per_event"]

EVENT_STATUSES = ("planning", "confirmed", "ongoing", "completed", "cancelled")


class MongoModel(BaseModel):
    """Base for models that carry bson ObjectId references."""
    model_config = ConfigDict(arbitrary_types_allowed=True)


# =============== USERS ===============
class Location(BaseModel):
    emirate: Emirate
    city: Optional[str] = None
    address: Optional[str] = None


class Profile(BaseModel):
    avatar: Optional[str] = None
    bio: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None


class Rating(BaseModel):
    average: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


class PriceRange(BaseModel):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)


class Package(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    includes: List[str] = Field(default_factory=list)


class Pricing(BaseModel):
    price_range: Optional[PriceRange] = None
    packages: List[Package] = Field(default_factory=list)


class PortfolioItem(BaseModel):
    title: str
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    date: Optional[datetime] = None


class FinancialLiteracy(BaseModel):
    level: LiteracyLevel = "basic"
    needs_guidance: bool = True


class UserBase(BaseModel):
    """
    Users collection schema (shared part)
    Collection: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Unique email, stored lower-cased")
    hashed_password: str = Field(..., description="BCrypt hashed password")
    location: Location
    profile: Profile = Field(default_factory=Profile)
    rating: Rating = Field(default_factory=Rating, description="Written only by the review aggregator")
    is_active: bool = Field(True, description="Soft-deactivation flag")


class OrganizerUser(UserBase):
    role: Literal["organizer"] = "organizer"
    organization_type: Optional[OrganizationType] = None
    financial_literacy: FinancialLiteracy = Field(default_factory=FinancialLiteracy)


class VendorUser(UserBase):
    role: Literal["vendor"] = "vendor"
    business_name: str = Field(..., description="Trading name shown to organizers")
    services: List[str] = Field(default_factory=list, description="Service tags")
    category: VendorCategory = "other"
    pricing: Pricing = Field(default_factory=Pricing)
    portfolio: List[PortfolioItem] = Field(default_factory=list)


# =============== EVENTS ===============
class EventDates(BaseModel):
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_window(self):
        if self.start >= self.end:
            raise ValueError("event start must be before end")
        return self


class EventLocation(BaseModel):
    emirate: Optional[Emirate] = None
    city: Optional[str] = None
    address: Optional[str] = None
    venue: Optional[str] = Field(None, description="Free-text venue name")


class Attendees(BaseModel):
    expected: int = Field(..., ge=0)
    confirmed: int = Field(0, ge=0)


class BudgetCategory(BaseModel):
    name: str
    allocated: float = Field(0, ge=0)
    spent: float = Field(0, ge=0)


class VendorRequest(MongoModel):
    """Embedded in Event.vendor_requests, addressed by its own _id."""
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    vendor: ObjectId
    service: str
    status: RequestStatus = "pending"
    requested_price: Optional[float] = Field(None, ge=0)
    quoted_price: Optional[float] = Field(None, ge=0)
    final_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    requested_at: datetime


class EventNote(MongoModel):
    content: str
    created_by: ObjectId
    created_at: datetime


class EventAttachment(MongoModel):
    filename: str
    url: str
    uploaded_by: ObjectId
    uploaded_at: datetime


class Event(MongoModel):
    """
    Events collection schema
    Collection: "event"
    """
    title: str
    description: Optional[str] = None
    organizer: ObjectId = Field(..., description="Owning organizer; never changes")
    event_type: EventType
    date: EventDates
    location: EventLocation = Field(default_factory=EventLocation)
    attendees: Attendees
    total_budget: float = Field(..., ge=0)
    budget_categories: List[BudgetCategory] = Field(default_factory=list)
    vendor_requests: List[dict] = Field(default_factory=list)
    status: EventStatus = "planning"
    notes: List[dict] = Field(default_factory=list)
    attachments: List[dict] = Field(default_factory=list)


# =============== MESSAGES ===============
class QuotationLine(BaseModel):
    item: str
    price: float = Field(..., ge=0)


class Quotation(BaseModel):
    services: List[str] = Field(default_factory=list)
    total_price: Optional[float] = Field(None, ge=0)
    breakdown: List[QuotationLine] = Field(default_factory=list)
    valid_until: Optional[datetime] = None
    terms: Optional[str] = None


class MessageAttachment(BaseModel):
    filename: str
    url: str
    type: Optional[str] = None


class Message(MongoModel):
    """
    Messages collection schema
    Collection: "message"
    """
    sender: ObjectId
    recipient: ObjectId
    event: Optional[ObjectId] = None
    content: str = Field(..., min_length=1)
    message_type: MessageType = "text"
    quotation: Optional[Quotation] = None
    attachments: List[MessageAttachment] = Field(default_factory=list)
    is_read: bool = False
    read_at: Optional[datetime] = None


# =============== REVIEWS ===============
class ReviewResponse(BaseModel):
    content: str
    responded_at: datetime


class Review(MongoModel):
    """
    Reviews collection schema
    Collection: "review"
    One review per (reviewer, reviewee, event).
    """
    reviewer: ObjectId
    reviewee: ObjectId
    event: ObjectId
    rating: int = Field(..., ge=1, le=5, description="Rating 1-5")
    comment: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    response: Optional[ReviewResponse] = None


# =============== VENUES ===============
class VenueLocation(BaseModel):
    emirate: Emirate
    city: Optional[str] = None
    address: str


class Capacity(BaseModel):
    minimum: Optional[int] = Field(None, ge=0)
    maximum: Optional[int] = Field(None, ge=0)


class VenuePricing(BaseModel):
    base_price: Optional[float] = Field(None, ge=0)
    price_type: Optional[PriceType] = None


class VenueImage(BaseModel):
    url: str
    caption: Optional[str] = None


class VenueContact(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    manager: Optional[str] = None


class Venue(BaseModel):
    """
    Venues collection schema
    Collection: "venue"
    """
    name: str
    description: Optional[str] = None
    venue_type: VenueType
    location: VenueLocation
    capacity: Capacity = Field(default_factory=Capacity)
    amenities: List[str] = Field(default_factory=list)
    pricing: VenuePricing = Field(default_factory=VenuePricing)
    images: List[VenueImage] = Field(default_factory=list)
    contact: VenueContact = Field(default_factory=VenueContact)
    rating: Rating = Field(default_factory=Rating)
    is_active: bool = True
