import logging
import os
from typing import Any, Dict, List, Optional, Union

from fastapi import Body, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import cart
import catalog
import config
import database
import orders
import reviews
from database import get_db
from errors import StoreError, ValidationError
from identity import resolve_owner
from notifications import EmailNotifier, build_wa_link, get_notifier

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - [%(levelname)s] - %(message)s",
)
logger = logging.getLogger("fanstore")

# App setup
app = FastAPI(title="Fan Store API", version="0.1.0")


# OPTIONS that CORS did not answer as a preflight gets {}. CORS is added
# after this, so it wraps it.
@app.middleware("http")
async def bare_options(request: Request, call_next):
    if request.method == "OPTIONS":
        return JSONResponse(content={})
    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    if database.db is not None:
        database.ensure_indexes(database.db)


# Error rendering
@app.exception_handler(StoreError)
async def store_error_handler(request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(PyMongoError)
async def database_error_handler(request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Database error"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request, exc: Exception):
    logger.exception("Unexpected error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Schemas (request)
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


Identifier = Optional[Union[int, str]]


class SignupRequest(CamelModel):
    name: Optional[str] = None
    identifier: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(CamelModel):
    identifier: Optional[str] = None
    password: Optional[str] = None


class CartAddRequest(CamelModel):
    user_id: Identifier = None
    guest_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: Optional[int] = None
    size: Optional[Union[str, int]] = None
    color: Optional[str] = None


class CartChangeRequest(CamelModel):
    id: Optional[str] = None
    change: Optional[int] = None
    user_id: Identifier = None
    guest_id: Optional[str] = None


class CheckoutRequest(CamelModel):
    user_id: Identifier = None
    guest_id: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    checkout_key: Optional[str] = None


class OrderItemRequest(CamelModel):
    product_id: Optional[str] = None
    quantity: Any = None
    price: Any = None
    size: Optional[Union[str, int]] = None
    color: Optional[str] = None


class OrderUpdateRequest(CamelModel):
    address: Optional[str] = None
    phone_number: Optional[str] = None
    items: Optional[List[OrderItemRequest]] = None
    status: Optional[str] = None


class OrderStatusRequest(CamelModel):
    order_id: Optional[str] = None
    status: Optional[str] = None


class ReviewCreateRequest(CamelModel):
    product_id: Optional[str] = None
    user_id: Identifier = None
    rating: Any = None
    review_title: Optional[str] = None
    review_dec: Optional[str] = None


class ReviewUpdateRequest(CamelModel):
    user_id: Identifier = None
    rating: Any = None
    review_title: Optional[str] = None
    review_dec: Optional[str] = None


class ReviewOwnerRequest(CamelModel):
    user_id: Identifier = None


# Health and helpers
@app.get("/")
def root():
    return {"message": "Fan Store API running"}


@app.get("/test")
def test_database():
    db = database.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return response


# Auth
@app.post("/signup")
def signup(payload: SignupRequest, response: Response, db: Database = Depends(get_db)):
    user = auth.signup(db, payload.name, payload.identifier, payload.password)
    token = auth.create_token(user)
    _set_session_cookie(response, token)
    return {"success": True, "user": auth.public_user(user), "token": token}


@app.post("/login")
def login(payload: LoginRequest, response: Response, db: Database = Depends(get_db)):
    user = auth.login(db, payload.identifier, payload.password)
    token = auth.create_token(user)
    _set_session_cookie(response, token)
    return {"message": "Login successful", "user": auth.public_user(user), "token": token}


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=auth.SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        max_age=config.JWT_EXPIRES_MIN * 60,
        path="/",
    )


@app.get("/me")
async def me(current_user: dict = Depends(auth.get_current_user)):
    return auth.public_user(current_user)


@app.get("/user")
def list_users(
    search: str = "",
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(auth.require_admin),
    db: Database = Depends(get_db),
):
    return auth.list_users(db, search, page, limit)


# Products
@app.get("/products")
def list_products(search: str = "", page: int = 1, db: Database = Depends(get_db)):
    return catalog.list_products(db, search, page)


@app.get("/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.product_out(catalog.get_product(db, product_id))


@app.post("/products", status_code=201)
def create_product(
    payload: Dict[str, Any] = Body(...),
    admin: dict = Depends(auth.require_admin),
    db: Database = Depends(get_db),
):
    return catalog.create_product(db, payload)


@app.put("/products/{product_id}")
def update_product(
    product_id: str,
    payload: Dict[str, Any] = Body(...),
    admin: dict = Depends(auth.require_admin),
    db: Database = Depends(get_db),
):
    return catalog.update_product(db, product_id, payload)


@app.delete("/products/{product_id}")
def delete_product(product_id: str, admin: dict = Depends(auth.require_admin), db: Database = Depends(get_db)):
    return {"id": catalog.delete_product(db, product_id), "deleted": True}


# Cart
@app.get("/cart")
def get_cart(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    guest_id: Optional[str] = Query(default=None, alias="guestId"),
    db: Database = Depends(get_db),
):
    return cart.list_cart(db, resolve_owner(user_id, guest_id))


@app.post("/cart", status_code=201)
def cart_add(payload: CartAddRequest, db: Database = Depends(get_db)):
    if not payload.product_id:
        raise ValidationError("Missing productId")
    item, guest_id = cart.add_to_cart(
        db,
        payload.product_id,
        quantity=payload.quantity,
        user_id=payload.user_id,
        guest_id=payload.guest_id,
        size=None if payload.size is None else str(payload.size),
        color=payload.color,
    )
    return {"cartItem": cart.item_out(item), "guestId": guest_id}


@app.put("/cart")
def cart_update(payload: CartChangeRequest, db: Database = Depends(get_db)):
    if not payload.id or not payload.change:
        raise ValidationError("id and change (+1 or -1) required")
    item = cart.change_quantity(db, payload.id, payload.change, payload.user_id, payload.guest_id)
    return {"success": True, "item": cart.item_out(item)}


@app.delete("/cart")
def cart_remove(
    id: Optional[str] = None,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    guest_id: Optional[str] = Query(default=None, alias="guestId"),
    db: Database = Depends(get_db),
):
    if not id:
        return JSONResponse(status_code=400, content={"success": False, "error": "cartItem id required"})
    try:
        deleted = cart.remove_item(db, id, user_id, guest_id)
    except StoreError as e:
        return JSONResponse(status_code=e.status_code, content={"success": False, "error": e.message})
    return {"success": True, "message": "Item deleted successfully", "deletedItemId": deleted}


# Checkout & Orders
@app.post("/checkout", status_code=201)
def checkout(
    payload: CheckoutRequest,
    response: Response,
    db: Database = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
):
    owner = resolve_owner(payload.user_id, payload.guest_id)
    shipping = orders.ShippingInfo(
        email=payload.email,
        address=payload.address,
        phone_number=payload.phone_number,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    result = orders.checkout(db, owner, shipping, notifier=notifier, checkout_key=payload.checkout_key)
    if result.replayed:
        response.status_code = 200
    return {
        "success": True,
        "message": "Checkout already completed" if result.replayed else "Checkout successful",
        "order": result.order,
        "waLink": result.wa_link,
        "replayed": result.replayed,
    }


@app.get("/checkout")
def list_my_orders(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    guest_id: Optional[str] = Query(default=None, alias="guestId"),
    db: Database = Depends(get_db),
):
    return {"orders": orders.list_owner_orders(db, resolve_owner(user_id, guest_id))}


@app.get("/order")
def list_orders(
    search: str = "",
    page: int = 1,
    admin: dict = Depends(auth.require_admin),
    db: Database = Depends(get_db),
):
    return orders.list_orders(db, search, page)


@app.put("/order")
def update_order_status(
    payload: OrderStatusRequest,
    admin: dict = Depends(auth.require_admin),
    db: Database = Depends(get_db),
):
    order = orders.update_status(db, payload.order_id, payload.status)
    return {"message": f"Order status updated to {order['status']}", "order": order}


@app.get("/order/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db)):
    return {"order": orders.order_out(orders.get_order(db, order_id))}


@app.put("/order/{order_id}")
def update_order(
    order_id: str,
    payload: OrderUpdateRequest,
    admin: dict = Depends(auth.require_admin),
    db: Database = Depends(get_db),
):
    items = None
    if payload.items is not None:
        items = [
            orders.ItemInput(
                product_id=it.product_id,
                quantity=it.quantity,
                price=it.price,
                size=None if it.size is None else str(it.size),
                color=it.color,
            )
            for it in payload.items
        ]
    order = orders.update_order(
        db,
        order_id,
        address=payload.address,
        phone_number=payload.phone_number,
        items=items,
        status=payload.status,
    )
    return {"success": True, "message": "Order updated successfully by admin", "order": order}


@app.get("/whatsapp")
def whatsapp_link(order_id: Optional[str] = Query(default=None, alias="orderId"), db: Database = Depends(get_db)):
    if not order_id:
        raise ValidationError("Missing orderId")
    order = orders.order_out(orders.get_order(db, order_id))
    return {"waLink": build_wa_link(order)}


# Reviews
@app.get("/productReview")
def list_product_reviews(
    product_id: Optional[str] = Query(default=None, alias="productId"),
    page: int = 1,
    limit: int = 10,
    db: Database = Depends(get_db),
):
    return reviews.list_product_reviews(db, product_id, page, limit)


@app.post("/productReview", status_code=201)
def create_product_review(payload: ReviewCreateRequest, db: Database = Depends(get_db)):
    return reviews.create_review(
        db,
        payload.product_id,
        payload.user_id,
        payload.rating,
        review_title=payload.review_title,
        review_dec=payload.review_dec,
    )


@app.get("/productReview/admin")
def admin_list_reviews(
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(auth.require_admin),
    db: Database = Depends(get_db),
):
    return reviews.list_all_reviews(db, page, limit)


@app.put("/productReview/admin/{review_id}")
def admin_update_review(
    review_id: str,
    payload: ReviewUpdateRequest,
    admin: dict = Depends(auth.require_admin),
    db: Database = Depends(get_db),
):
    review = reviews.update_review(
        db,
        review_id,
        review_title=payload.review_title,
        review_dec=payload.review_dec,
        rating=payload.rating,
        as_admin=True,
    )
    return {"success": True, "review": review}


@app.delete("/productReview/admin/{review_id}")
def admin_delete_review(review_id: str, admin: dict = Depends(auth.require_admin), db: Database = Depends(get_db)):
    reviews.delete_review(db, review_id, as_admin=True)
    return {"success": True, "message": "Review deleted by admin"}


@app.put("/productReview/{review_id}")
def update_product_review(review_id: str, payload: ReviewUpdateRequest, db: Database = Depends(get_db)):
    review = reviews.update_review(
        db,
        review_id,
        payload.user_id,
        review_title=payload.review_title,
        review_dec=payload.review_dec,
        rating=payload.rating,
    )
    return {"success": True, "review": review}


@app.delete("/productReview/{review_id}")
def delete_product_review(
    review_id: str,
    payload: Optional[ReviewOwnerRequest] = Body(default=None),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Database = Depends(get_db),
):
    if payload is not None and payload.user_id is not None:
        user_id = payload.user_id
    reviews.delete_review(db, review_id, user_id)
    return {"success": True, "message": "Review deleted"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
