"""
Product reviews and the derived Product.rating.

Every write recomputes the product's mean rating from the full current set
of reviews, in the same transaction as the write when transactions are on.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from urllib.parse import quote

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from catalog import get_product
from database import create_document, page_window, parse_id, serialize_doc, total_pages, transaction, utcnow
from errors import (
    DuplicateReview,
    ProductNotFound,
    ReviewNotFound,
    Unauthenticated,
    Unauthorized,
    ValidationError,
)
from schemas import ProductReview

logger = logging.getLogger(__name__)

ONE_DECIMAL = Decimal("0.1")
AVATAR_URL = "https://api.dicebear.com/9.x/initials/svg?seed={seed}&size=64&backgroundColor=0891b2"


def parse_rating(value) -> int:
    try:
        number = Decimal(str(value))
    except Exception:
        raise ValidationError("Rating must be between 1 and 5")
    if number != number.to_integral_value() or not 1 <= number <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    return int(number)


def mean_rating(ratings) -> float:
    """Mean rounded half-up to one decimal; 0 when there are no ratings."""
    ratings = list(ratings)
    if not ratings:
        return 0.0
    avg = Decimal(sum(ratings)) / Decimal(len(ratings))
    return float(avg.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP))


def recompute_rating(db: Database, product_id: str, session=None) -> float:
    ratings = [r["rating"] for r in db["productreview"].find({"product_id": product_id}, {"rating": 1}, session=session)]
    rating = mean_rating(ratings)
    db["product"].update_one(
        {"_id": parse_id(product_id, ProductNotFound)},
        {"$set": {"rating": rating, "updated_at": utcnow()}},
        session=session,
    )
    logger.debug("Product %s rating recomputed from %s reviews: %s", product_id, len(ratings), rating)
    return rating


def review_out(doc: dict) -> dict:
    d = serialize_doc(doc)
    return {
        "id": d["id"],
        "productId": d.get("product_id"),
        "userId": d.get("user_id"),
        "rating": d.get("rating"),
        "reviewTitle": d.get("review_title"),
        "reviewDec": d.get("review_dec"),
        "createdAt": d.get("created_at"),
        "updatedAt": d.get("updated_at"),
    }


def avatar_for(name: str) -> str:
    return AVATAR_URL.format(seed=quote(name, safe=""))


def _get_user(db: Database, user_id) -> dict:
    if not ObjectId.is_valid(str(user_id)):
        raise Unauthenticated("Unauthorized: Please login")
    user = db["user"].find_one({"_id": ObjectId(str(user_id))})
    if not user:
        raise Unauthenticated("Unauthorized: Please login")
    return user


def _get_review(db: Database, review_id) -> dict:
    review = db["productreview"].find_one({"_id": parse_id(review_id, ReviewNotFound)})
    if not review:
        raise ReviewNotFound()
    return review


def create_review(
    db: Database,
    product_id,
    user_id,
    rating,
    review_title: Optional[str] = None,
    review_dec: Optional[str] = None,
) -> dict:
    if not product_id or rating is None or not user_id:
        raise ValidationError("productId, rating, and userId are required")
    rating = parse_rating(rating)
    user = _get_user(db, user_id)
    product = get_product(db, product_id)

    review = ProductReview(
        product_id=str(product["_id"]),
        user_id=str(user["_id"]),
        rating=rating,
        review_title=review_title,
        review_dec=review_dec,
    )
    if db["productreview"].find_one({"product_id": review.product_id, "user_id": review.user_id}):
        raise DuplicateReview()

    try:
        with transaction(db) as session:
            review_id = create_document(db, "productreview", review, session=session)
            recompute_rating(db, review.product_id, session=session)
    except DuplicateKeyError:
        raise DuplicateReview()

    return review_out(db["productreview"].find_one({"_id": ObjectId(review_id)}))


def update_review(
    db: Database,
    review_id,
    user_id=None,
    review_title: Optional[str] = None,
    review_dec: Optional[str] = None,
    rating=None,
    as_admin: bool = False,
) -> dict:
    """Edit a review. Only its author may, unless ``as_admin``."""
    if not as_admin and not user_id:
        raise ValidationError("userId is required")
    if as_admin and not review_title and not review_dec and rating is None:
        raise ValidationError("At least one field is required to update")

    review = _get_review(db, review_id)
    if not as_admin and review["user_id"] != str(user_id).strip():
        raise Unauthorized("Not authorized")

    update = {"updated_at": utcnow()}
    if review_title is not None:
        update["review_title"] = review_title
    if review_dec is not None:
        update["review_dec"] = review_dec
    if rating is not None:
        update["rating"] = parse_rating(rating)

    with transaction(db) as session:
        doc = db["productreview"].find_one_and_update(
            {"_id": review["_id"]},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if doc is None:
            raise ReviewNotFound()
        recompute_rating(db, review["product_id"], session=session)
    return review_out(doc)


def delete_review(db: Database, review_id, user_id=None, as_admin: bool = False) -> str:
    if not as_admin and not user_id:
        raise ValidationError("userId is required")

    review = _get_review(db, review_id)
    if not as_admin and review["user_id"] != str(user_id).strip():
        raise Unauthorized("Not authorized")

    with transaction(db) as session:
        db["productreview"].delete_one({"_id": review["_id"]}, session=session)
        recompute_rating(db, review["product_id"], session=session)
    return str(review["_id"])


def list_product_reviews(db: Database, product_id, page: int = 1, limit: int = 10) -> dict:
    if not product_id:
        raise ValidationError("productId is required")
    pid = str(product_id)
    page, limit, skip = page_window(page, limit)

    total = db["productreview"].count_documents({"product_id": pid})
    reviews = list(db["productreview"].find({"product_id": pid}).sort("_id", DESCENDING).skip(skip).limit(limit))
    names = _user_names(db, [r["user_id"] for r in reviews])

    data = []
    for r in reviews:
        out = review_out(r)
        name = names.get(r["user_id"])
        out["user"] = {"id": r["user_id"], "name": name}
        out["avatar"] = avatar_for(name or f"Review {out['id']}")
        data.append(out)

    return {
        "data": data,
        "totalReviews": total,
        "currentPage": page,
        "totalPages": total_pages(total, limit),
    }


def list_all_reviews(db: Database, page: int = 1, limit: int = 10) -> dict:
    page, limit, skip = page_window(page, limit)
    total = db["productreview"].count_documents({})
    reviews = list(db["productreview"].find({}).sort("_id", DESCENDING).skip(skip).limit(limit))
    names = _user_names(db, [r["user_id"] for r in reviews])
    product_ids = [ObjectId(r["product_id"]) for r in reviews if ObjectId.is_valid(r["product_id"])]
    products = {str(p["_id"]): p.get("name") for p in db["product"].find({"_id": {"$in": product_ids}}, {"name": 1})}

    data = []
    for r in reviews:
        out = review_out(r)
        out["user"] = {"id": r["user_id"], "name": names.get(r["user_id"])}
        out["product"] = {"id": r["product_id"], "name": products.get(r["product_id"])}
        data.append(out)

    return {
        "success": True,
        "data": data,
        "totalReviews": total,
        "currentPage": page,
        "totalPages": total_pages(total, limit),
    }


def _user_names(db: Database, user_ids) -> dict:
    oids = [ObjectId(u) for u in set(user_ids) if ObjectId.is_valid(u)]
    if not oids:
        return {}
    return {str(u["_id"]): u.get("name") for u in db["user"].find({"_id": {"$in": oids}}, {"name": 1})}
