import pytest
from bson import ObjectId

import cart
import catalog
from errors import ItemNotFound, ProductNotFound, QuantityFloor, Unauthorized, ValidationError
from identity import GuestOwner, UserOwner


def test_add_mints_guest_and_lists_live_product(db, make_product):
    product = make_product(name="Pak Fan Deluxe", price=8500)

    item, guest_id = cart.add_to_cart(db, product["id"], quantity=1, color="White")

    assert guest_id
    assert item["guest_id"] == guest_id
    assert item["user_id"] is None
    lines = cart.list_cart(db, GuestOwner(guest_id))
    assert lines == [{
        "id": str(item["_id"]),
        "quantity": 1,
        "color": "White",
        "size": None,
        "name": "Pak Fan Deluxe",
        "price": 8500,
        "image": "/uploads/default.png",
        "productId": product["id"],
        "sku": product["sku"],
    }]


def test_repeat_add_increments_single_row(db, make_product):
    product = make_product()

    cart.add_to_cart(db, product["id"], quantity=2, user_id="u1")
    item, _ = cart.add_to_cart(db, product["id"], quantity=3, user_id="u1")

    assert item["quantity"] == 5
    assert db["cart"].count_documents({"user_id": "u1"}) == 1


def test_variant_is_not_part_of_row_key(db, make_product):
    product = make_product()

    cart.add_to_cart(db, product["id"], user_id="u1", size="56")
    item, _ = cart.add_to_cart(db, product["id"], user_id="u1", size="48")

    assert item["quantity"] == 2
    assert item["size"] == "56"


def test_owners_do_not_share_rows(db, make_product):
    product = make_product()
    cart.add_to_cart(db, product["id"], user_id="u1")
    cart.add_to_cart(db, product["id"], guest_id="g1")

    assert len(cart.list_cart(db, UserOwner("u1"))) == 1
    assert len(cart.list_cart(db, GuestOwner("g1"))) == 1


def test_list_reflects_current_price(db, make_product):
    product = make_product(price=100)
    cart.add_to_cart(db, product["id"], user_id="u1")

    catalog.update_product(db, product["id"], {"price": 120})

    assert cart.list_cart(db, UserOwner("u1"))[0]["price"] == 120


def test_add_unknown_product(db):
    with pytest.raises(ProductNotFound):
        cart.add_to_cart(db, str(ObjectId()), user_id="u1")
    with pytest.raises(ProductNotFound):
        cart.add_to_cart(db, "not-an-id", user_id="u1")


@pytest.mark.parametrize("quantity", [0, -2])
def test_add_rejects_non_positive_quantity(db, make_product, quantity):
    product = make_product()
    with pytest.raises(ValidationError):
        cart.add_to_cart(db, product["id"], quantity=quantity, user_id="u1")


def test_quantity_steps_never_cross_floor(db, make_product):
    product = make_product()
    item, guest_id = cart.add_to_cart(db, product["id"], quantity=2)
    item_id = str(item["_id"])

    assert cart.change_quantity(db, item_id, -1, guest_id=guest_id)["quantity"] == 1
    with pytest.raises(QuantityFloor):
        cart.change_quantity(db, item_id, -1, guest_id=guest_id)
    assert db["cart"].find_one({"_id": item["_id"]})["quantity"] == 1

    assert cart.change_quantity(db, item_id, 1, guest_id=guest_id)["quantity"] == 2


@pytest.mark.parametrize("change", [0, 2, -3])
def test_change_must_be_single_step(db, make_product, change):
    product = make_product()
    item, _ = cart.add_to_cart(db, product["id"], user_id="u1")
    with pytest.raises(ValidationError):
        cart.change_quantity(db, str(item["_id"]), change, user_id="u1")


def test_foreign_identity_cannot_touch_item(db, make_product):
    product = make_product()
    item, guest_id = cart.add_to_cart(db, product["id"], quantity=3)
    item_id = str(item["_id"])

    with pytest.raises(Unauthorized):
        cart.change_quantity(db, item_id, 1, guest_id="someone-else")
    with pytest.raises(Unauthorized):
        cart.change_quantity(db, item_id, 1, user_id=guest_id)
    with pytest.raises(Unauthorized):
        cart.remove_item(db, item_id)

    assert db["cart"].find_one({"_id": item["_id"]})["quantity"] == 3


def test_user_row_ignores_matching_guest_id(db, make_product):
    product = make_product()
    item, _ = cart.add_to_cart(db, product["id"], user_id="u1", guest_id="g1")

    with pytest.raises(Unauthorized):
        cart.remove_item(db, str(item["_id"]), user_id="u2", guest_id="g1")
    assert cart.remove_item(db, str(item["_id"]), user_id="u1") == str(item["_id"])


def test_remove_missing_item_before_ownership(db):
    with pytest.raises(ItemNotFound):
        cart.remove_item(db, str(ObjectId()), guest_id="anyone")
    with pytest.raises(ItemNotFound):
        cart.change_quantity(db, str(ObjectId()), 1)


def test_remove_deletes_exactly_one_row(db, make_product):
    first, second = make_product(), make_product()
    item, guest_id = cart.add_to_cart(db, first["id"])
    cart.add_to_cart(db, second["id"], guest_id=guest_id)

    assert cart.remove_item(db, str(item["_id"]), guest_id=guest_id) == str(item["_id"])
    remaining = cart.list_cart(db, GuestOwner(guest_id))
    assert [line["productId"] for line in remaining] == [second["id"]]


def test_list_skips_rows_of_deleted_products(db, make_product):
    product = make_product()
    cart.add_to_cart(db, product["id"], user_id="u1")
    db["product"].delete_one({"_id": ObjectId(product["id"])})

    assert cart.list_cart(db, UserOwner("u1")) == []


def test_clear_cart_only_touches_owner(db, make_product):
    product = make_product()
    cart.add_to_cart(db, product["id"], user_id="u1")
    cart.add_to_cart(db, product["id"], guest_id="g1")

    assert cart.clear_cart(db, UserOwner("u1")) == 1
    assert db["cart"].count_documents({}) == 1


def test_rows_have_exactly_one_owner(db, make_product):
    product = make_product()
    cart.add_to_cart(db, product["id"], user_id="u1")
    cart.add_to_cart(db, product["id"], user_id="u1", guest_id="g9")
    cart.add_to_cart(db, product["id"])
    cart.add_to_cart(db, product["id"], guest_id="g1")

    for row in db["cart"].find():
        assert (row["user_id"] is None) != (row["guest_id"] is None)


def test_reading_without_identity(client):
    response = client.get("/cart")
    assert response.status_code == 400
    assert response.json() == {"error": "userId or guestId required"}


def test_cart_endpoints(client, make_product):
    product = make_product(price=4200)

    created = client.post("/cart", json={"productId": product["id"], "quantity": 2, "size": 56})
    assert created.status_code == 201
    body = created.json()
    guest_id = body["guestId"]
    item_id = body["cartItem"]["id"]
    assert body["cartItem"]["guestId"] == guest_id
    assert body["cartItem"]["size"] == "56"

    listed = client.get("/cart", params={"guestId": guest_id}).json()
    assert [(line["id"], line["quantity"], line["price"]) for line in listed] == [(item_id, 2, 4200)]

    stepped = client.put("/cart", json={"id": item_id, "change": -1, "guestId": guest_id})
    assert stepped.status_code == 200
    assert stepped.json()["success"] is True
    assert stepped.json()["item"]["quantity"] == 1

    floor = client.put("/cart", json={"id": item_id, "change": -1, "guestId": guest_id})
    assert floor.status_code == 400
    assert floor.json() == {"error": "Minimum quantity is 1"}

    forbidden = client.put("/cart", json={"id": item_id, "change": 1, "guestId": "intruder"})
    assert forbidden.status_code == 403

    denied = client.delete("/cart", params={"id": item_id, "guestId": "intruder"})
    assert denied.status_code == 403
    assert denied.json()["success"] is False

    deleted = client.delete("/cart", params={"id": item_id, "guestId": guest_id})
    assert deleted.status_code == 200
    assert deleted.json()["deletedItemId"] == item_id

    missing = client.delete("/cart", params={"id": item_id, "guestId": guest_id})
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Cart item not found"}


def test_cart_add_requires_product(client):
    response = client.post("/cart", json={"quantity": 1})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing productId"}


def test_cart_add_unknown_product(client):
    response = client.post("/cart", json={"productId": str(ObjectId()), "userId": 1})
    assert response.status_code == 404
    assert response.json() == {"error": "Product not found"}



def test_clear_cart_by_ids(db, make_product):
    first, second = make_product(), make_product()
    kept, _ = cart.add_to_cart(db, first["id"], user_id="u1")
    dropped, _ = cart.add_to_cart(db, second["id"], user_id="u1")
    foreign, _ = cart.add_to_cart(db, second["id"], user_id="u2")

    assert cart.clear_cart(db, UserOwner("u1"), item_ids=[dropped["_id"], foreign["_id"]]) == 1
    assert {row["_id"] for row in db["cart"].find()} == {kept["_id"], foreign["_id"]}
