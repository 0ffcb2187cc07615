from jose import jwt

from salonhub.auth import create_access_token
from salonhub.config import JWT_ALGORITHM, JWT_SECRET_KEY
from salonhub.models import User
from salonhub.token_blacklist import get_blacklist_size


def test_missing_token_is_unauthorized(client, seed):
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.json()["success"] is False
    assert response.headers["www-authenticate"] == "Bearer"


def test_invalid_and_expired_tokens(client, seed):
    forged = jwt.encode({"sub": seed.users["owner"]}, "wrong-secret", algorithm=JWT_ALGORITHM)
    expired = create_access_token(seed.users["owner"], expires_minutes=-5)

    for token in (forged, expired, "not-a-jwt"):
        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert response.json()["message"] == "Token has expired. Please login again."


def test_token_without_subject(client, seed):
    token = jwt.encode({"role": "owner"}, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_me_lists_memberships(client, seed, auth_headers):
    response = client.get("/auth/me", headers=auth_headers("owner"))

    data = response.json()["data"]
    assert data["email"] == "owner@example.com"
    assert data["stores"] == [
        {"store_id": seed.store_id, "store_name": "Glow Studio", "role": "owner"}
    ]


def test_inactive_user_is_rejected(client, db, seed, auth_headers):
    user = db.get(User, seed.users["staff"])
    user.status = "inactive"
    db.commit()

    response = client.get("/auth/me", headers=auth_headers("staff"))
    assert response.status_code == 401
    assert response.json()["message"] == "User account is not active"


def test_logout_blacklists_token(client, seed, auth_headers):
    headers = auth_headers("manager")

    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert get_blacklist_size() == 1

    response = client.get("/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been invalidated. Please login again."


def test_health_endpoints(client):
    assert client.get("/health").json() == {"status": "healthy"}
    redis_status = client.get("/health/redis").json()
    assert redis_status["status"] == "healthy"
    assert redis_status["redis"]["configured"] is False


def test_unknown_route_uses_envelope(client):
    response = client.get("/no/such/route")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Not Found"}


def test_security_headers_are_set(client):
    response = client.get("/")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "Strict-Transport-Security" not in response.headers
