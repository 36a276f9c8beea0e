import pytest

import auth
from auth import decode_token, hash_password

from .helpers import auth_header

PASSWORD = "Passw0rd!"


@pytest.fixture
def user(store):
    doc = {"name": "User Name", "email": "user@example.com", "password": hash_password(PASSWORD), "isAdmin": False}
    store["users"].insert_one(doc)
    return doc


def test_home(client):
    res = client.get("/")

    assert res.status_code == 200
    assert "home" in res.json()["message"]


class TestRegister:
    def body(self, **overrides):
        body = {"name": "New User", "email": "new@example.com", "password": PASSWORD}
        body.update(overrides)
        return body

    def test_invalid_body(self, client):
        assert client.post("/api/users", json=self.body(password="weak")).status_code == 400

    def test_email_in_use(self, client, user):
        res = client.post("/api/users", json=self.body(email=user["email"]))

        assert res.status_code == 400
        assert res.json()["detail"] == "Email already in use"

    def test_registers_with_hashed_password_and_token(self, client, store):
        res = client.post("/api/users", json=self.body())

        assert res.status_code == 200
        assert set(res.json()) == {"id", "name", "email"}
        stored = store["users"].find_one({"email": "new@example.com"})
        assert stored["password"] != PASSWORD
        assert auth.verify_password(PASSWORD, stored["password"])
        assert stored["isAdmin"] is False
        identity = decode_token(res.headers["x-auth-token"])
        assert identity == {"id": res.json()["id"], "isAdmin": False}


class TestLogin:
    def test_invalid_body(self, client):
        assert client.post("/api/login", json={"email": "user@example.com"}).status_code == 400

    def test_unknown_email(self, client):
        res = client.post("/api/login", json={"email": "nobody@example.com", "password": PASSWORD})

        assert res.status_code == 400
        assert res.json()["detail"] == "Invalid email or password"

    def test_wrong_password(self, client, user):
        res = client.post("/api/login", json={"email": user["email"], "password": "Wr0ngpass!"})

        assert res.status_code == 400

    def test_returns_token(self, client, user):
        res = client.post("/api/login", json={"email": user["email"], "password": PASSWORD})

        assert res.status_code == 200
        assert res.json()["token_type"] == "bearer"
        assert decode_token(res.json()["access_token"])["id"] == str(user["_id"])

    def test_registered_address_with_mixed_case_domain(self, client):
        credentials = {"email": "User@EXAMPLE.com", "password": PASSWORD}
        registered = client.post("/api/users", json={"name": "New User", **credentials})

        res = client.post("/api/login", json=credentials)

        assert registered.json()["email"] == "User@example.com"
        assert res.status_code == 200
        assert decode_token(res.json()["access_token"])["id"] == registered.json()["id"]


class TestMe:
    def test_requires_token(self, client):
        assert client.get("/api/users/me").status_code == 401

    def test_returns_user_without_password(self, client, user):
        token = auth.create_access_token(user)

        res = client.get("/api/users/me", headers=auth_header(token))

        assert res.status_code == 200
        assert res.json() == {"id": str(user["_id"]), "name": "User Name", "email": "user@example.com", "isAdmin": False}

    def test_deleted_user(self, client, token):
        res = client.get("/api/users/me", headers=auth_header(token))

        assert res.status_code == 400
        assert res.json()["detail"] == "User not found"


class TestList:
    def test_requires_admin(self, client, token):
        assert client.get("/api/users", headers=auth_header(token)).status_code == 403

    def test_lists_without_passwords(self, client, store, user, admin_token):
        store["users"].insert_one({"name": "Another User", "email": "another@example.com", "password": "x"})

        res = client.get("/api/users", headers=auth_header(admin_token))

        assert res.status_code == 200
        assert [u["name"] for u in res.json()] == ["Another User", "User Name"]
        assert all("password" not in u for u in res.json())


def test_bearer_token_accepted(client, user):
    token = auth.create_access_token(user)

    res = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})

    assert res.status_code == 200
    assert res.json()["id"] == str(user["_id"])
