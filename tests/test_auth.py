import jwt
import pytest

import auth
import cart
import config
from errors import DuplicateUser, Unauthenticated, UserNotFound, ValidationError


def test_signup_with_email_and_login(db):
    user = auth.signup(db, "Fatima", "Fatima@Example.com", "s3cret")
    assert user["email"] == "fatima@example.com"
    assert "phone" not in user
    assert user["hashed_password"] != "s3cret"

    logged_in = auth.login(db, "FATIMA@example.com", "s3cret")
    assert logged_in["_id"] == user["_id"]


def test_signup_with_phone(db):
    user = auth.signup(db, "Usman", "03001112223", "pw")
    assert user["phone"] == "03001112223"
    assert auth.login(db, "03001112223", "pw")["_id"] == user["_id"]


def test_duplicate_signup(db):
    auth.signup(db, "Fatima", "fatima@example.com", "pw")
    with pytest.raises(DuplicateUser):
        auth.signup(db, "Other", "FATIMA@example.com", "pw")


def test_signup_requires_all_fields(db):
    with pytest.raises(ValidationError):
        auth.signup(db, "Fatima", None, "pw")


def test_login_failures(db):
    auth.signup(db, "Fatima", "fatima@example.com", "pw")
    with pytest.raises(Unauthenticated):
        auth.login(db, "fatima@example.com", "wrong")
    with pytest.raises(UserNotFound):
        auth.login(db, "ghost@example.com", "pw")


def test_token_carries_user_and_admin_flag(make_user):
    admin = make_user(is_admin=True, email="boss@example.com")
    payload = auth.decode_token(auth.create_token(admin))
    assert payload["sub"] == str(admin["_id"])
    assert payload["is_admin"] is True


def test_tampered_token():
    token = jwt.encode({"sub": "x"}, config.JWT_SECRET + "-other", algorithm="HS256")
    with pytest.raises(Unauthenticated):
        auth.decode_token(token)


def test_signup_login_me_over_http(client):
    signed_up = client.post("/signup", json={"name": "Hamza", "identifier": "hamza@example.com", "password": "pw"})
    assert signed_up.status_code == 200
    assert signed_up.json()["user"]["email"] == "hamza@example.com"

    logged_in = client.post("/login", json={"identifier": "hamza@example.com", "password": "pw"})
    assert logged_in.status_code == 200
    token = logged_in.json()["token"]
    assert auth.SESSION_COOKIE in logged_in.cookies

    me = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["name"] == "Hamza"
    assert me.json()["isAdmin"] is False

    wrong = client.post("/login", json={"identifier": "hamza@example.com", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid credentials"}

    again = client.post("/signup", json={"name": "Hamza", "identifier": "hamza@example.com", "password": "pw"})
    assert again.status_code == 409


def test_me_requires_token(client):
    response = client.get("/me")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_user_list_for_admin(client, admin_headers, db, make_product):
    shopper = auth.signup(db, "Nida", "nida@example.com", "pw")
    product = make_product()
    cart.add_to_cart(db, product["id"], user_id=str(shopper["_id"]))

    listed = client.get("/user", params={"search": "nida"}, headers=admin_headers).json()

    assert listed["totalUsers"] == 1
    assert listed["data"][0]["_count"] == {"orders": 0, "cartItems": 1}
