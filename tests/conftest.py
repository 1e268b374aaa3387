import os
import tempfile
from datetime import datetime, timedelta, timezone

os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="pw-uploads-"))
os.environ.setdefault("JWT_SECRET", "test-secret")

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from main import app

UAE = {"emirate": "Dubai", "city": "Dubai", "address": "Business Bay"}


@pytest.fixture
def mongo_db():
    database = mongomock.MongoClient().pocketwatcher_test
    ensure_indexes(database)
    return database


@pytest.fixture
def client(mongo_db):
    app.dependency_overrides[get_db] = lambda: mongo_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, role, email, name="Test User", **extra):
    payload = {
        "name": name,
        "email": email,
        "password": "password123",
        "role": role,
        "location": UAE,
    }
    if role == "vendor":
        payload.setdefault("business_name", f"{name} Co")
    payload.update(extra)
    r = client.post("/api/auth/register", json=payload)
    assert r.status_code == 201, r.text
    body = r.json()
    return {
        "id": body["user"]["id"],
        "headers": {"Authorization": f"Bearer {body['access_token']}"},
        "user": body["user"],
    }


@pytest.fixture
def organizer(client):
    return register(client, "organizer", "sarah@pocketwatcher.ae", name="Sarah")


@pytest.fixture
def vendor(client):
    return register(client, "vendor", "fatima@deluxecatering.ae", name="Fatima",
                    business_name="Deluxe Catering", category="catering", services=["Catering"])


@pytest.fixture
def other_vendor(client):
    return register(client, "vendor", "khalid@soundwaveav.ae", name="Khalid",
                    business_name="Soundwave AV", category="audio_visual")


def event_payload(**overrides):
    start = datetime.now(timezone.utc) + timedelta(days=30)
    payload = {
        "title": "Corporate Gala",
        "event_type": "corporate",
        "date": {"start": start.isoformat(), "end": (start + timedelta(hours=6)).isoformat()},
        "location": {"emirate": "Dubai", "venue": "Seaside Resort Venue"},
        "attendees": {"expected": 150},
        "total_budget": 45000,
        "budget_categories": [
            {"name": "Venue", "allocated": 13500, "spent": 8000},
            {"name": "Catering", "allocated": 11250, "spent": 0},
        ],
    }
    payload.update(overrides)
    return payload


# --- direct document helpers for unit tests ---
def insert_user(db, role, name, **fields):
    doc = {
        "name": name,
        "email": f"{name.lower().replace(' ', '.')}@pocketwatcher.ae",
        "hashed_password": "x",
        "role": role,
        "location": UAE,
        "profile": {},
        "rating": {"average": 0, "count": 0},
        "is_active": True,
    }
    doc.update(fields)
    return db["user"].insert_one(doc).inserted_id


def insert_event(db, organizer_id, start=None, **fields):
    start = start or datetime.now(timezone.utc) + timedelta(days=10)
    doc = {
        "title": "Summer Wedding",
        "organizer": organizer_id,
        "event_type": "wedding",
        "date": {"start": start, "end": start + timedelta(hours=5)},
        "attendees": {"expected": 100, "confirmed": 0},
        "total_budget": 10000,
        "budget_categories": [],
        "vendor_requests": [],
        "status": "planning",
        "created_at": datetime.now(timezone.utc),
    }
    doc.update(fields)
    return db["event"].insert_one(doc).inserted_id


def vendor_request(vendor_id, service="Catering", status="pending", **fields):
    doc = {
        "_id": ObjectId(),
        "vendor": vendor_id,
        "service": service,
        "status": status,
        "requested_price": None,
        "quoted_price": None,
        "final_price": None,
        "notes": None,
        "requested_at": datetime.now(timezone.utc),
    }
    doc.update(fields)
    return doc
