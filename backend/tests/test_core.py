"""Configuration, error taxonomy, token verification and the blob store."""
from datetime import timedelta

import pytest

from finance_api.core.config import SimpleSettings
from finance_api.core.errors import Conflict, ErrorKind, NotFound, Unauthenticated
from finance_api.services.blob_store import LocalBlobStore
from finance_api.services.security import (
    ExpiredToken,
    InvalidToken,
    TokenVerifier,
    create_access_token,
    hash_password,
    verify_password,
)


class TestSettings:

    def test_overrides(self, tmp_path):
        s = SimpleSettings(SECRET_KEY="abc", UPLOAD_ROOT=str(tmp_path))
        assert s.SECRET_KEY == "abc"
        assert s.API_PREFIX == "/api/v1"

    def test_unknown_override_rejected(self):
        with pytest.raises(AttributeError):
            SimpleSettings(NOT_A_SETTING=1)


def test_error_kinds_map_to_status():
    assert Conflict().kind.status_code == 409
    assert NotFound("x").kind == ErrorKind.NOT_FOUND
    assert Unauthenticated().kind.status_code == 401
    assert ErrorKind.STORE_UNAVAILABLE.status_code == 503


class TestTokenVerifier:

    def test_password_hashing(self):
        hashed = hash_password("secret123")
        assert verify_password("secret123", hashed)
        assert not verify_password("nope", hashed)
        assert not verify_password("secret123", "garbage")

    def test_verify(self, database, settings, make_user):
        alice = make_user("alice")
        verifier = TokenVerifier(database.session, settings)

        identity = verifier.verify(create_access_token(alice.id, settings))
        assert identity.user_id == alice.id
        assert identity.is_active

        with pytest.raises(ExpiredToken):
            verifier.verify(create_access_token(alice.id, settings, expires_delta=timedelta(seconds=-10)))
        with pytest.raises(InvalidToken):
            verifier.verify(create_access_token(9999, settings))
        with pytest.raises(InvalidToken):
            verifier.verify(create_access_token(alice.id, SimpleSettings(SECRET_KEY="other-secret")))


class TestLocalBlobStore:

    def test_put_and_delete(self, tmp_path):
        store = LocalBlobStore(str(tmp_path))
        url = store.put(b"data", "7/abc.jpg")
        assert url == "/uploads/7/abc.jpg"
        assert (tmp_path / "7" / "abc.jpg").read_bytes() == b"data"
        store.delete("7/abc.jpg")
        assert not (tmp_path / "7" / "abc.jpg").exists()
        # deleting twice is fine
        store.delete("7/abc.jpg")

    def test_key_cannot_escape_root(self, tmp_path):
        store = LocalBlobStore(str(tmp_path / "root"))
        with pytest.raises(ValueError):
            store.put(b"x", "../outside.txt")
