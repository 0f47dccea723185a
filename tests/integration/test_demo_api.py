import pytest
from fastapi.testclient import TestClient

from fedgate_backend.app.main import create_app

pytestmark = pytest.mark.integration


@pytest.fixture
def demo_client():
    # fresh app => fresh user repository
    return TestClient(create_app())


def test_echo_get_reports_query(demo_client):
    r = demo_client.get("/api", params={"q": "1"})
    assert r.status_code == 200
    body = r.json()
    assert body["method"] == "GET"
    assert body["query"] == {"q": "1"}
    assert body["path"] == "/api"
    assert r.headers["access-control-allow-origin"] == "*"


def test_echo_post_reports_body(demo_client):
    r = demo_client.post("/api", json={"hello": "world"})
    assert r.json()["body"] == {"hello": "world"}
    assert r.json()["message"] == "POST request received"


def test_echo_patch_not_allowed(demo_client):
    r = demo_client.patch("/api")
    assert r.status_code == 405
    assert r.json()["error"] == "Method not allowed"


def test_users_create_list_get(demo_client):
    created = demo_client.post("/api/users", json={"name": "Ada", "email": "a@b.com"})
    assert created.status_code == 201
    user = created.json()["user"]

    listed = demo_client.get("/api/users").json()
    assert listed["count"] == 1
    assert listed["users"][0]["email"] == "a@b.com"

    one = demo_client.get("/api/users", params={"id": user["id"]})
    assert one.json()["name"] == "Ada"


def test_users_validation_and_missing(demo_client):
    assert demo_client.post("/api/users", json={"name": "Ada"}).status_code == 400
    r = demo_client.get("/api/users", params={"id": "nope"})
    assert r.status_code == 404
    assert r.json() == {"error": "User not found"}


def test_repositories_are_per_app():
    a, b = TestClient(create_app()), TestClient(create_app())
    a.post("/api/users", json={"name": "Ada", "email": "a@b.com"})
    assert b.get("/api/users").json()["count"] == 0


def test_unknown_route_uses_error_shape(demo_client):
    r = demo_client.get("/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Not Found"}


def test_healthz(demo_client):
    assert demo_client.get("/healthz").json() == {"status": "ok"}
