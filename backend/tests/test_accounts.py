from __future__ import annotations

import pytest

from procurement.auth import passwords
from procurement.auth.tokens import TokenError, issue_access_token, verify_access_token
from procurement.errors import Conflict, NotFound, Unauthorized, ValidationError
from procurement.repositories import users_repo
from procurement.services import accounts


def _register(**overrides):
    body = {
        "username": "acme_buyer",
        "email": "Buyer@Acme.example",
        "password": "Secret123",
        "role": "requester",
        "full_name": "Ada Buyer",
        "organization_name": "Acme",
    }
    body.update(overrides)
    return accounts.register(**body)


def test_password_hash_roundtrip_and_strength():
    stored = passwords.hash_password("Secret123", rounds=4)
    assert stored.startswith("$2b$04$")
    assert passwords.verify_password("Secret123", stored)
    assert not passwords.verify_password("secret123", stored)
    assert not passwords.verify_password("Secret123", "garbage")
    assert not passwords.verify_password("Secret123", None)

    # Inputs past bcrypt's 72-byte window still differ after pre-hashing.
    long_pw = "Aa1" + "x" * 100
    long_hash = passwords.hash_password(long_pw, rounds=4)
    assert passwords.verify_password(long_pw, long_hash)
    assert not passwords.verify_password(long_pw + "y", long_hash)

    for weak in ("Ab1", "alllowercase1", "NOLOWER1", "NoDigitsHere"):
        with pytest.raises(ValidationError):
            passwords.check_strength(weak)


def test_tokens_carry_subject():
    token = issue_access_token("usr_1", role="requester")
    assert verify_access_token(token) == "usr_1"
    with pytest.raises(TokenError):
        verify_access_token(token + "x")
    with pytest.raises(TokenError):
        verify_access_token("")


def test_register_creates_user_and_claims(table):
    session = _register()
    user = session["user"]
    assert session["token_type"] == "Bearer"
    assert verify_access_token(session["access_token"]) == user["id"]
    assert user["email"] == "buyer@acme.example"
    assert user["role"] == "requester"
    assert user["organizationName"] == "Acme"
    assert "passwordHash" not in user
    assert users_repo.username_taken("ACME_BUYER")
    assert users_repo.email_taken("buyer@acme.example")


def test_register_accepts_legacy_role_names(table):
    user = _register(role="supplier")["user"]
    assert user["role"] == "responder"


def test_register_rejects_duplicates_and_bad_input(table):
    _register()
    with pytest.raises(Conflict):
        _register(email="other@acme.example")
    with pytest.raises(Conflict):
        _register(username="someone_else")
    with pytest.raises(ValidationError):
        _register(username="x", email="x@acme.example")
    with pytest.raises(ValidationError):
        _register(username="admin_user", email="a@acme.example", role="admin")


def test_login_by_username_or_email(table):
    _register()
    assert accounts.login(username="acme_buyer", password="Secret123")["user"]["username"] == "acme_buyer"
    assert accounts.login(username="BUYER@acme.example", password="Secret123")["access_token"]
    with pytest.raises(Unauthorized):
        accounts.login(username="acme_buyer", password="Wrong1234")
    with pytest.raises(Unauthorized):
        accounts.login(username="nobody", password="Secret123")


def test_login_rejects_deactivated_account(table):
    uid = _register()["user"]["id"]
    users_repo.update_user(uid, sets={"isActive": False})
    with pytest.raises(Unauthorized):
        accounts.login(username="acme_buyer", password="Secret123")


def test_profile_and_password_changes(table):
    uid = _register()["user"]["id"]

    user = accounts.update_profile(uid, {"fullName": "Ada B.", "organizationName": None, "phone": "555-0100"})
    assert user["fullName"] == "Ada B."
    assert user["phone"] == "555-0100"
    assert "organizationName" not in user
    with pytest.raises(ValidationError):
        accounts.update_profile(uid, {"fullName": "  "})

    with pytest.raises(ValidationError):
        accounts.change_password(uid, current_password="nope", new_password="Newpass1")
    accounts.change_password(uid, current_password="Secret123", new_password="Newpass1")
    assert accounts.login(username="acme_buyer", password="Newpass1")

    with pytest.raises(NotFound):
        accounts.get_me("usr_missing")
