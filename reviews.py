"""
Reviews and the reviewee rating aggregate.

The aggregate on the user document is always recomputed from every review of
that user rather than adjusted incrementally.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import find_user_by_id, update_rating_aggregate
from database import create_document, to_object_id, utcnow
from errors import DuplicateRequest, Forbidden, NotFound, ValidationError
from schemas import Review

logger = logging.getLogger(__name__)


def recompute_rating(db: Database, reviewee_id) -> Dict[str, Any]:
    reviewee = to_object_id(reviewee_id)
    ratings = [r["rating"] for r in db["review"].find({"reviewee": reviewee}, {"rating": 1})]
    count = len(ratings)
    average = sum(ratings) / count if count else 0
    update_rating_aggregate(db, reviewee, average, count)
    logger.info("Rating for %s recomputed: %.2f over %d reviews", reviewee, average, count)
    return {"average": average, "count": count}


def create_review(
    db: Database,
    reviewer_id,
    reviewee_id,
    event_id,
    rating: int,
    comment: Optional[str] = None,
    photos: Optional[List[str]] = None,
) -> Dict[str, Any]:
    reviewer = to_object_id(reviewer_id)
    reviewee = to_object_id(reviewee_id, "reviewee id")
    event = to_object_id(event_id, "event id")

    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer from 1 to 5")
    if find_user_by_id(db, reviewee) is None:
        raise NotFound("Reviewee not found")
    if not db["event"].find_one({"_id": event}, {"_id": 1}):
        raise NotFound("Event not found")
    if db["review"].find_one({"reviewer": reviewer, "reviewee": reviewee, "event": event}):
        raise DuplicateRequest("Review already exists")

    review = Review(
        reviewer=reviewer,
        reviewee=reviewee,
        event=event,
        rating=rating,
        comment=comment,
        photos=photos or [],
    )
    try:
        review_id = create_document(db, "review", review)
    except DuplicateKeyError:
        raise DuplicateRequest("Review already exists")
    logger.info("Review %s by %s for %s (rating %d)", review_id, reviewer, reviewee, rating)

    recompute_rating(db, reviewee)
    return db["review"].find_one({"_id": to_object_id(review_id)})


def list_reviews_for_user(db: Database, user_id) -> List[Dict[str, Any]]:
    reviews = list(db["review"].find({"reviewee": to_object_id(user_id, "user id")}).sort("created_at", -1))
    people = {r["reviewer"] for r in reviews}
    events = {r["event"] for r in reviews}
    reviewers = {u["_id"]: u for u in db["user"].find({"_id": {"$in": list(people)}}, {"name": 1, "role": 1})}
    titles = {e["_id"]: e for e in db["event"].find({"_id": {"$in": list(events)}}, {"title": 1})}
    for r in reviews:
        r["reviewer"] = reviewers.get(r["reviewer"], {"_id": r["reviewer"]})
        r["event"] = titles.get(r["event"], {"_id": r["event"]})
    return reviews


def respond_to_review(db: Database, caller_id, review_id, content: str) -> Dict[str, Any]:
    """The reviewee may answer a review once."""
    review_oid = to_object_id(review_id, "review id")
    review = db["review"].find_one({"_id": review_oid})
    if not review:
        raise NotFound("Review not found")
    if review["reviewee"] != to_object_id(caller_id):
        raise Forbidden("Only the reviewee can respond to a review")
    if review.get("response"):
        raise DuplicateRequest("Review already has a response")

    response = {"content": content, "responded_at": utcnow()}
    db["review"].update_one({"_id": review_oid}, {"$set": {"response": response, "updated_at": utcnow()}})
    review["response"] = response
    return review
