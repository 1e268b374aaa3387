from datetime import datetime, timedelta, timezone

from bson import ObjectId

from conftest import event_payload, register


def create_event(client, organizer, **overrides):
    r = client.post("/api/events", json=event_payload(**overrides), headers=organizer["headers"])
    assert r.status_code == 201, r.text
    return r.json()["event"]


def send_request(client, organizer, event_id, vendor, service="Catering", price=11000):
    return client.post(
        f"/api/events/{event_id}/vendor-requests",
        json={"vendor_id": vendor["id"], "service": service, "requested_price": price},
        headers=organizer["headers"],
    )


# =============== AUTH & PROFILE ===============
def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["success"] is True


def test_register_and_login(client):
    user = register(client, "organizer", "Sarah@PocketWatcher.ae", name="Sarah", organization_type="sme_owner")
    assert user["user"]["email"] == "sarah@pocketwatcher.ae"
    assert "hashed_password" not in user["user"]
    assert "business_name" not in user["user"]

    r = client.post("/api/auth/login", json={"email": "sarah@pocketwatcher.ae", "password": "password123"})
    assert r.status_code == 200
    assert r.json()["access_token"]


def test_register_duplicate_email(client, organizer):
    r = client.post("/api/auth/register", json={
        "name": "Again", "email": "sarah@pocketwatcher.ae", "password": "password123",
        "role": "organizer", "location": {"emirate": "Dubai"},
    })
    assert r.status_code == 409
    assert r.json()["error"] == "DuplicateRequest"


def test_register_vendor_requires_business_name(client):
    r = client.post("/api/auth/register", json={
        "name": "No Biz", "email": "nobiz@pocketwatcher.ae", "password": "password123",
        "role": "vendor", "location": {"emirate": "Sharjah"},
    })
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"


def test_register_rejects_unknown_emirate(client):
    r = client.post("/api/auth/register", json={
        "name": "Far", "email": "far@pocketwatcher.ae", "password": "password123",
        "role": "organizer", "location": {"emirate": "Doha"},
    })
    assert r.status_code == 422


def test_login_wrong_password(client, organizer):
    r = client.post("/api/auth/login", json={"email": "sarah@pocketwatcher.ae", "password": "nope-nope"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "BadRequest", "message": "Incorrect email or password"}


def test_requires_token(client):
    assert client.get("/api/events").status_code == 401
    assert client.get("/api/events", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_auth_failures_use_error_envelope(client):
    r = client.get("/api/events")
    assert r.status_code == 401
    assert r.headers["www-authenticate"] == "Bearer"
    assert r.json() == {"success": False, "error": "Unauthorized", "message": "Not authenticated"}

    r = client.get("/api/events", headers={"Authorization": "Bearer garbage"})
    assert r.json() == {"success": False, "error": "Unauthorized", "message": "Could not validate credentials"}


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/api/nowhere")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "NotFound", "message": "API endpoint not found"}


def test_profile_update_ignores_protected_fields(client, vendor):
    r = client.put("/api/users/profile", headers=vendor["headers"], json={
        "name": "Fatima A.",
        "role": "organizer",
        "rating": {"average": 5, "count": 100},
        "services": ["Catering", "Desserts"],
        "organization_type": "student",
    })
    assert r.status_code == 200
    user = r.json()["user"]
    assert user["name"] == "Fatima A."
    assert user["role"] == "vendor"
    assert user["rating"] == {"average": 0, "count": 0}
    assert user["services"] == ["Catering", "Desserts"]
    assert "organization_type" not in user


def test_deactivated_user_cannot_log_in(client, organizer):
    assert client.delete("/api/users/profile", headers=organizer["headers"]).status_code == 200
    r = client.post("/api/auth/login", json={"email": "sarah@pocketwatcher.ae", "password": "password123"})
    assert r.status_code == 403
    assert client.get("/api/users/profile", headers=organizer["headers"]).status_code == 401


# =============== EVENTS & VENDOR REQUESTS ===============
def test_vendor_cannot_create_event(client, vendor):
    r = client.post("/api/events", json=event_payload(), headers=vendor["headers"])
    assert r.status_code == 403
    assert r.json() == {"success": False, "error": "Forbidden", "message": "Only organizers can create events"}


def test_event_window_must_be_ordered(client, organizer):
    start = datetime.now(timezone.utc) + timedelta(days=3)
    bad = {"start": start.isoformat(), "end": start.isoformat()}
    r = client.post("/api/events", json=event_payload(date=bad), headers=organizer["headers"])
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"


def test_negotiation_scenario(client, organizer, vendor):
    event = create_event(client, organizer, total_budget=45000)
    assert event["organizer"] == organizer["id"]

    r = send_request(client, organizer, event["id"], vendor, "Catering", 11000)
    assert r.status_code == 200
    request_id = r.json()["vendor_request"]["id"]

    r = client.put(
        f"/api/events/{event['id']}/vendor-requests/{request_id}",
        json={"status": "accepted", "quoted_price": 10500},
        headers=vendor["headers"],
    )
    assert r.status_code == 200

    for who in (vendor, organizer):
        r = client.get(f"/api/events/{event['id']}", headers=who["headers"])
        assert r.status_code == 200
        requests = r.json()["event"]["vendor_requests"]
        assert len(requests) == 1
        assert requests[0]["status"] == "accepted"
        assert requests[0]["quoted_price"] == 10500
        assert requests[0]["requested_price"] == 11000
        assert requests[0]["vendor"] == vendor["id"]


def test_vendor_cannot_touch_another_vendors_request(client, organizer, vendor, other_vendor):
    event = create_event(client, organizer)
    send_request(client, organizer, event["id"], vendor, "Catering")
    r = send_request(client, organizer, event["id"], other_vendor, "Sound")
    theirs = r.json()["vendor_request"]["id"]

    r = client.put(
        f"/api/events/{event['id']}/vendor-requests/{theirs}",
        json={"status": "declined"},
        headers=vendor["headers"],
    )
    assert r.status_code == 403
    assert r.json()["error"] == "Forbidden"


def test_duplicate_vendor_request(client, organizer, vendor):
    event = create_event(client, organizer)
    assert send_request(client, organizer, event["id"], vendor).status_code == 200
    r = send_request(client, organizer, event["id"], vendor)
    assert r.status_code == 409
    assert r.json()["error"] == "DuplicateRequest"


def test_invalid_transition_via_api(client, organizer, vendor):
    event = create_event(client, organizer)
    request_id = send_request(client, organizer, event["id"], vendor).json()["vendor_request"]["id"]
    url = f"/api/events/{event['id']}/vendor-requests/{request_id}"

    assert client.put(url, json={"status": "declined"}, headers=vendor["headers"]).status_code == 200
    r = client.put(url, json={"status": "accepted"}, headers=organizer["headers"])
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"


def test_unknown_status_value_rejected(client, organizer, vendor):
    event = create_event(client, organizer)
    request_id = send_request(client, organizer, event["id"], vendor).json()["vendor_request"]["id"]
    r = client.put(f"/api/events/{event['id']}/vendor-requests/{request_id}",
                   json={"status": "archived"}, headers=vendor["headers"])
    assert r.status_code == 422


def test_outsider_cannot_read_event(client, organizer, vendor, other_vendor):
    event = create_event(client, organizer)
    send_request(client, organizer, event["id"], vendor)
    assert client.get(f"/api/events/{event['id']}", headers=other_vendor["headers"]).status_code == 403
    assert client.get(f"/api/events/{ObjectId()}", headers=organizer["headers"]).status_code == 404
    assert client.get("/api/events/not-an-id", headers=organizer["headers"]).status_code == 422


def test_event_list_per_role(client, organizer, vendor):
    first = create_event(client, organizer, title="Gala")
    create_event(client, organizer, title="Offsite")
    send_request(client, organizer, first["id"], vendor)

    assert len(client.get("/api/events", headers=organizer["headers"]).json()["events"]) == 2
    vendor_events = client.get("/api/events", headers=vendor["headers"]).json()["events"]
    assert [e["title"] for e in vendor_events] == ["Gala"]


def test_update_event_keeps_organizer_and_requests(client, organizer, vendor):
    event = create_event(client, organizer)
    send_request(client, organizer, event["id"], vendor)

    r = client.put(f"/api/events/{event['id']}", headers=organizer["headers"], json={
        "title": "Corporate Gala 2026",
        "status": "confirmed",
        "organizer": vendor["id"],
        "vendor_requests": [],
    })
    assert r.status_code == 200
    updated = r.json()["event"]
    assert updated["title"] == "Corporate Gala 2026"
    assert updated["status"] == "confirmed"
    assert updated["organizer"] == organizer["id"]
    assert len(updated["vendor_requests"]) == 1

    r = client.put(f"/api/events/{event['id']}", headers=vendor["headers"], json={"title": "Mine now"})
    assert r.status_code == 403


def test_notes_and_attachments(client, organizer, vendor, other_vendor):
    event = create_event(client, organizer)
    send_request(client, organizer, event["id"], vendor)

    r = client.post(f"/api/events/{event['id']}/notes", json={"content": "Menu tasting Friday"},
                    headers=vendor["headers"])
    assert r.status_code == 201
    r = client.post(f"/api/events/{event['id']}/attachments",
                    json={"filename": "floorplan.pdf", "url": "/uploads/floorplan.pdf"},
                    headers=organizer["headers"])
    assert r.status_code == 201
    r = client.post(f"/api/events/{event['id']}/notes", json={"content": "hi"}, headers=other_vendor["headers"])
    assert r.status_code == 403

    stored = client.get(f"/api/events/{event['id']}", headers=organizer["headers"]).json()["event"]
    assert stored["notes"][0]["created_by"] == vendor["id"]
    assert stored["attachments"][0]["filename"] == "floorplan.pdf"


# =============== MESSAGES ===============
def test_messages_and_conversations(client, organizer, vendor, other_vendor):
    client.post("/api/messages", json={"recipient_id": vendor["id"], "content": "Are you free in June?"},
                headers=organizer["headers"])
    r = client.post("/api/messages", headers=vendor["headers"], json={
        "recipient_id": organizer["id"],
        "content": "Here is our quote",
        "message_type": "quote",
        "quotation": {
            "services": ["Catering"],
            "total_price": 10500,
            "breakdown": [{"item": "Buffet", "price": 9000}, {"item": "Staff", "price": 1500}],
            "terms": "50% deposit",
        },
    })
    assert r.status_code == 201
    quote = r.json()["message"]
    assert quote["quotation"]["total_price"] == 10500
    client.post("/api/messages", json={"recipient_id": organizer["id"], "content": "Sound check?"},
                headers=other_vendor["headers"])

    rows = client.get("/api/conversations", headers=organizer["headers"]).json()["conversations"]
    by_participant = {row["participant"]["id"]: row for row in rows}
    assert set(by_participant) == {vendor["id"], other_vendor["id"]}
    assert by_participant[vendor["id"]]["unread_count"] == 1
    assert by_participant[vendor["id"]]["participant"]["business_name"] == "Deluxe Catering"

    r = client.put(f"/api/messages/{quote['id']}/read", headers=vendor["headers"])
    assert r.status_code == 403
    r = client.put(f"/api/messages/{quote['id']}/read", headers=organizer["headers"])
    assert r.status_code == 200
    assert r.json()["message"]["is_read"] is True

    rows = client.get("/api/conversations", headers=organizer["headers"]).json()["conversations"]
    assert {row["participant"]["id"]: row["unread_count"] for row in rows}[vendor["id"]] == 0

    thread = client.get(f"/api/messages?recipient_id={vendor['id']}", headers=organizer["headers"]).json()
    assert [m["content"] for m in thread["messages"]] == ["Are you free in June?", "Here is our quote"]


def test_message_to_unknown_recipient(client, organizer):
    r = client.post("/api/messages", json={"recipient_id": str(ObjectId()), "content": "hello"},
                    headers=organizer["headers"])
    assert r.status_code == 404
    assert r.json()["error"] == "NotFound"


def test_conversations_empty(client, organizer):
    r = client.get("/api/conversations", headers=organizer["headers"])
    assert r.json() == {"success": True, "conversations": []}


# =============== REVIEWS ===============
def test_reviews_update_vendor_rating(client, organizer, vendor):
    other_organizer = register(client, "organizer", "ahmed@pocketwatcher.ae", name="Ahmed")
    event = create_event(client, organizer)

    for reviewer, score in ((organizer, 5), (other_organizer, 3)):
        r = client.post("/api/reviews", headers=reviewer["headers"], json={
            "reviewee_id": vendor["id"], "event_id": event["id"], "rating": score,
        })
        assert r.status_code == 201

    rating = client.get(f"/api/vendors/{vendor['id']}").json()["vendor"]["rating"]
    assert rating == {"average": 4.0, "count": 2}

    listed = client.get(f"/api/reviews/{vendor['id']}").json()["reviews"]
    assert len(listed) == 2


def test_review_validation_and_duplicates(client, organizer, vendor):
    event = create_event(client, organizer)
    body = {"reviewee_id": vendor["id"], "event_id": event["id"], "rating": 6}
    r = client.post("/api/reviews", json=body, headers=organizer["headers"])
    assert r.status_code == 422

    body["rating"] = 4
    assert client.post("/api/reviews", json=body, headers=organizer["headers"]).status_code == 201
    r = client.post("/api/reviews", json=body, headers=organizer["headers"])
    assert r.status_code == 409

    body["event_id"] = str(ObjectId())
    r = client.post("/api/reviews", json=body, headers=organizer["headers"])
    assert r.status_code == 404
    assert r.json()["message"] == "Event not found"


def test_review_response(client, organizer, vendor):
    event = create_event(client, organizer)
    review = client.post("/api/reviews", headers=organizer["headers"], json={
        "reviewee_id": vendor["id"], "event_id": event["id"], "rating": 4, "comment": "Great food",
    }).json()["review"]

    r = client.put(f"/api/reviews/{review['id']}/response", json={"content": "Thanks Sarah!"},
                   headers=vendor["headers"])
    assert r.status_code == 200
    assert r.json()["review"]["response"]["content"] == "Thanks Sarah!"


# =============== ANALYTICS & NOTIFICATIONS ===============
def test_dashboard_per_role(client, organizer, vendor):
    event = create_event(client, organizer, total_budget=45000)
    request_id = send_request(client, organizer, event["id"], vendor).json()["vendor_request"]["id"]
    client.put(f"/api/events/{event['id']}/vendor-requests/{request_id}",
               json={"status": "accepted", "quoted_price": 10500}, headers=vendor["headers"])

    org_stats = client.get("/api/analytics/dashboard", headers=organizer["headers"]).json()["analytics"]
    assert org_stats["total_events"] == 1
    assert org_stats["upcoming_events"] == 1
    assert org_stats["total_spent"] == 8000
    assert org_stats["savings"] == 37000

    vendor_stats = client.get("/api/analytics/dashboard", headers=vendor["headers"]).json()["analytics"]
    assert vendor_stats["total_requests"] == 1
    assert vendor_stats["accepted_requests"] == 1
    assert vendor_stats["response_rate"] == 100


def test_notifications_follow_negotiation(client, organizer, vendor):
    event = create_event(client, organizer, title="Corporate Gala")
    request_id = send_request(client, organizer, event["id"], vendor).json()["vendor_request"]["id"]

    items = client.get("/api/notifications", headers=vendor["headers"]).json()["notifications"]
    assert [n["type"] for n in items] == ["new_request"]
    assert items[0]["event_id"] == event["id"]

    client.put(f"/api/events/{event['id']}/vendor-requests/{request_id}",
               json={"status": "accepted", "quoted_price": 10500}, headers=vendor["headers"])
    assert client.get("/api/notifications", headers=vendor["headers"]).json()["notifications"] == []
    items = client.get("/api/notifications", headers=organizer["headers"]).json()["notifications"]
    assert items[0]["message"] == "Deluxe Catering responded to your request for Corporate Gala"


def test_budget_recommendations_endpoint(client, organizer):
    r = client.get("/api/budget-recommendations/wedding?total_budget=50000&attendees=200",
                   headers=organizer["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["currency"] == "AED"
    assert body["recommendations"][0]["amount"] == 15000
    assert len(body["cost_saving_tips"]) == 5


# =============== DISCOVERY ===============
def test_vendor_discovery_filters(client, vendor, other_vendor):
    r = client.get("/api/vendors?category=catering")
    assert [v["business_name"] for v in r.json()["vendors"]] == ["Deluxe Catering"]
    assert "hashed_password" not in r.json()["vendors"][0]

    r = client.get("/api/vendors?search=soundwave")
    assert [v["business_name"] for v in r.json()["vendors"]] == ["Soundwave AV"]

    assert client.get(f"/api/vendors/{ObjectId()}").status_code == 404


def test_venues_and_search(client, mongo_db, vendor):
    mongo_db["venue"].insert_many([
        {"name": "Palm Ballroom", "venue_type": "hotel", "is_active": True,
         "location": {"emirate": "Dubai", "address": "Palm Jumeirah"},
         "capacity": {"minimum": 50, "maximum": 500},
         "pricing": {"base_price": 20000, "price_type": "per_event"},
         "rating": {"average": 4.8, "count": 12}},
        {"name": "Corniche Garden", "venue_type": "outdoor", "is_active": True,
         "location": {"emirate": "Abu Dhabi", "address": "Corniche"},
         "capacity": {"minimum": 20, "maximum": 120},
         "pricing": {"base_price": 5000, "price_type": "per_day"},
         "rating": {"average": 4.2, "count": 3}},
    ])

    r = client.get("/api/venues?min_capacity=200")
    assert [v["name"] for v in r.json()["venues"]] == ["Palm Ballroom"]
    r = client.get("/api/venues", params={"price_max": 6000, "emirate": "Abu Dhabi"})
    assert [v["name"] for v in r.json()["venues"]] == ["Corniche Garden"]

    r = client.get("/api/search?q=catering")
    results = r.json()["results"]
    assert [v["business_name"] for v in results["vendors"]] == ["Deluxe Catering"]
    assert results["venues"] == []

    r = client.get("/api/search?q=palm&type=venues")
    assert "vendors" not in r.json()["results"]
    assert r.json()["results"]["venues"][0]["name"] == "Palm Ballroom"

    assert client.get("/api/search?q=c%2B%2B(").status_code == 200
    r = client.get("/api/search")
    assert r.status_code == 422
    assert r.json()["message"] == "Search query required"


def test_event_search_for_organizer(client, organizer):
    create_event(client, organizer, title="Corporate Gala")
    r = client.get("/api/search?q=gala&type=events", headers=organizer["headers"])
    assert [e["title"] for e in r.json()["results"]["events"]] == ["Corporate Gala"]
    r = client.get("/api/search?q=gala&type=events")
    assert "events" not in r.json()["results"]


def test_upload(client, organizer):
    r = client.post("/api/upload", headers=organizer["headers"],
                    files={"file": ("menu.pdf", b"%PDF-1.4 menu", "application/pdf")})
    assert r.status_code == 200
    body = r.json()
    assert body["url"].startswith("/uploads/")
    assert body["url"].endswith(".pdf")
    assert client.get(body["url"]).content == b"%PDF-1.4 menu"
