from unittest.mock import Mock

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from littlefish.core.errors import Unauthorized
from littlefish.core.security import hash_password, verify_password
from littlefish.db.init_db import DEMO_PASSWORD, DEMO_USERS, seed_demo_users
from littlefish.models.users import User


class TestLoginAPI:
    """Test cases for the /api/login endpoint"""

    def test_login_success(self, client: TestClient, user: User):
        response = client.post("/api/login", json={"username": "jsmith", "password": "password123"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["id"] == user.id
        assert data["username"] == "jsmith"
        assert data["walletAddress"] is None
        assert "password" not in data

    def test_login_wrong_password(self, client: TestClient, user: User):
        response = client.post("/api/login", json={"username": "jsmith", "password": "nope"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"message": "Invalid username or password", "code": "unauthorized"}

    def test_login_unknown_user(self, client: TestClient):
        response = client.post("/api/login", json={"username": "ghost", "password": "password123"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_login_blank_fields(self, client: TestClient):
        response = client.post("/api/login", json={"username": " ", "password": ""})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert set(response.json()["errors"]) == {"username", "password"}


class TestSessionAPI:
    def test_current_user_requires_session(self, client: TestClient):
        response = client.get("/api/user")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["code"] == "unauthorized"

    def test_current_user_after_login(self, logged_in_client: TestClient, user: User):
        response = logged_in_client.get("/api/user")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["email"] == "john@example.com"

    def test_logout_clears_session(self, logged_in_client: TestClient):
        response = logged_in_client.post("/api/logout")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"message": "Logged out"}
        assert logged_in_client.get("/api/user").status_code == status.HTTP_401_UNAUTHORIZED

    def test_deleted_account_invalidates_session(self, logged_in_client: TestClient, user: User, db: Session):
        db.delete(user)
        db.commit()

        assert logged_in_client.get("/api/user").status_code == status.HTTP_401_UNAUTHORIZED


class TestRegisterAPI:
    def test_register_logs_in(self, client: TestClient):
        response = client.post(
            "/api/register",
            json={"username": "alice", "password": "s3cret", "name": "Alice", "email": "alice@example.com"},
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["username"] == "alice"
        assert client.get("/api/user").json()["username"] == "alice"

    def test_register_duplicate_username(self, client: TestClient, user: User):
        response = client.post(
            "/api/register",
            json={"username": "jsmith", "password": "x", "name": "Other", "email": "other@example.com"},
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["errors"] == {"username": "already exists"}

    def test_register_duplicate_email(self, client: TestClient, user: User):
        response = client.post(
            "/api/register",
            json={"username": "other", "password": "x", "name": "Other", "email": "john@example.com"},
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["errors"] == {"email": "already exists"}


class TestPasswords:
    def test_hash_roundtrip(self):
        hashed = hash_password("password123", rounds=4)

        assert hashed.startswith("$2b$04$")
        assert verify_password("password123", hashed)
        assert not verify_password("password124", hashed)

    @pytest.mark.parametrize("hashed", ["", "not-a-bcrypt-hash"])
    def test_malformed_hash_never_matches(self, hashed):
        assert verify_password("password123", hashed) is False


class TestSeedDemoUsers:
    def test_seed_is_idempotent(self, db: Session):
        assert seed_demo_users(db) == len(DEMO_USERS)
        assert seed_demo_users(db) == 0

        sarah = db.query(User).filter(User.username == "sarah").one()
        assert verify_password(DEMO_PASSWORD, sarah.password)
        assert sarah.wallet_address == DEMO_USERS[1]["wallet_address"]

    def test_seed_skips_existing(self):
        db = Mock(spec=Session)
        db.query.return_value.filter.return_value.first.return_value = User(username="jsmith")

        assert seed_demo_users(db) == 0
        db.add.assert_not_called()
        db.commit.assert_called_once()


class TestErrors:
    def test_error_body_shape(self):
        err = Unauthorized()

        assert err.status_code == 401
        assert err.to_dict() == {"message": "Authentication required", "code": "unauthorized"}
