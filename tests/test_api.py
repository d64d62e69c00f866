from fastapi.testclient import TestClient

import catalog
import main


def test_root(client):
    assert client.get("/").json() == {"message": "Fan Store API running"}


def test_options_answers_empty_object(client):
    response = client.options("/cart")
    assert response.status_code == 200
    assert response.json() == {}


def test_cors_allows_any_origin(client):
    response = client.get("/", headers={"Origin": "https://shop.example"})
    assert response.headers["access-control-allow-origin"] == "*"


def test_unknown_route_uses_error_shape(client):
    response = client.get("/nowhere")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_malformed_body_is_a_bad_request(client):
    response = client.put("/cart", json={"id": "x", "change": "up"})
    assert response.status_code == 400
    assert "change" in response.json()["error"]


def test_cart_change_requires_id_and_step(client):
    response = client.put("/cart", json={"change": 1, "guestId": "g"})
    assert response.status_code == 400
    assert response.json() == {"error": "id and change (+1 or -1) required"}


def test_cart_delete_reports_failure_flag(client):
    response = client.delete("/cart", params={"guestId": "g"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "cartItem id required"}


def test_unknown_order_id(client):
    response = client.get("/order/not-an-id")
    assert response.status_code == 404
    assert response.json() == {"error": "Order not found"}


def test_diagnostics_without_database(client):
    body = client.get("/test").json()
    assert body["backend"] == "✅ Running"
    assert "database" in body


def test_preflight_is_answered_by_cors(client):
    response = client.options("/cart", headers={
        "Origin": "https://shop.example",
        "Access-Control-Request-Method": "POST",
    })
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_options_on_unknown_path(client):
    response = client.options("/nowhere")
    assert response.status_code == 200
    assert response.json() == {}


def test_unexpected_errors_stay_opaque(client, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("connection string mongodb://admin:hunter2@db")

    monkeypatch.setattr(catalog, "list_products", broken)
    quiet = TestClient(main.app, raise_server_exceptions=False)

    response = quiet.get("/products")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
