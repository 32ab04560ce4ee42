from datetime import timedelta

import jwt

from app.security import create_access_token, decode_access_token


def test_token_round_trip():
    claims = decode_access_token(create_access_token("admin"))
    assert claims["sub"] == "admin"


def test_login_issues_working_token(client):
    response = client.post("/api/auth/token", json={"username": "admin", "password": "s3cret"})
    assert response.status_code == 200
    token = response.json()
    assert token["token_type"] == "bearer"
    assert token["expires_in"] == 3600

    headers = {"Authorization": f"Bearer {token['access_token']}"}
    assert client.get("/api/orders", headers=headers).status_code == 200


def test_login_with_wrong_password(client):
    response = client.post("/api/auth/token", json={"username": "admin", "password": "nope"})
    assert response.status_code == 401


def test_expired_token_rejected(client):
    token = create_access_token("admin", expires_delta=timedelta(minutes=-1))
    response = client.get("/api/orders", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Token expired"


def test_token_signed_with_other_secret_rejected(client):
    forged = jwt.encode({"sub": "admin", "exp": 9999999999}, "other-secret", algorithm="HS256")
    response = client.get("/api/orders", headers={"Authorization": f"Bearer {forged}"})
    assert response.status_code == 401


def test_non_bearer_scheme_rejected(client):
    response = client.get("/api/orders", headers={"Authorization": "Basic YWRtaW46czNjcmV0"})
    assert response.status_code == 401


def test_public_catalog_needs_no_token(client):
    assert client.get("/api/products/categories").status_code == 200
    assert client.get("/api/products").status_code == 200
