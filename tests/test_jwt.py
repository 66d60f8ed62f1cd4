"""
Tests for signed access / refresh tokens.
"""

import hashlib
import hmac
import json
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode

import pytest

from auth.jwt import (
    TokenExpired,
    TokenInvalid,
    TokenIssuer,
    TokenMalformed,
    create_token,
    decode_token,
)

USER = {
    "id": "6f1c7f4e-1b7a-4e43-9d43-2f4a0f1f7c11",
    "email": "alice@x.com",
    "username": "alice",
    "fullName": "alice liddell",
}


def _issuer(**overrides) -> TokenIssuer:
    params = dict(
        access_secret="access",
        access_expiry_seconds=900,
        refresh_secret="refresh",
        refresh_expiry_seconds=86400,
    )
    params.update(overrides)
    return TokenIssuer(**params)


def _tamper(token: str, **changes) -> str:
    body, sig = token.split(".", 1)
    payload = json.loads(urlsafe_b64decode(body + "=" * (-len(body) % 4)))
    payload.update(changes)
    forged = urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")
    return forged + "." + sig


class TestTokenIssuer:
    def test_access_token_carries_user_claims(self):
        claims = _issuer().verify_access_token(_issuer().issue_access_token(USER))
        for key in ("id", "email", "username", "fullName"):
            assert claims[key] == USER[key]
        assert claims["exp"] - claims["iat"] == 900

    def test_refresh_token_carries_only_id(self):
        claims = _issuer().verify_refresh_token(_issuer().issue_refresh_token(USER["id"]))
        assert claims["id"] == USER["id"]
        assert "email" not in claims
        assert claims["exp"] - claims["iat"] == 86400

    def test_tokens_minted_together_are_distinct(self):
        issuer = _issuer()
        assert issuer.issue_refresh_token(USER["id"]) != issuer.issue_refresh_token(USER["id"])

    def test_access_token_rejected_as_refresh(self):
        issuer = _issuer()
        with pytest.raises(TokenMalformed):
            issuer.verify_refresh_token(issuer.issue_access_token(USER))

    def test_refresh_token_rejected_as_access(self):
        issuer = _issuer()
        with pytest.raises(TokenMalformed):
            issuer.verify_access_token(issuer.issue_refresh_token(USER["id"]))

    def test_expired_token(self):
        issuer = _issuer(refresh_expiry_seconds=-1)
        with pytest.raises(TokenExpired):
            issuer.verify_refresh_token(issuer.issue_refresh_token(USER["id"]))

    def test_tampered_payload(self):
        issuer = _issuer()
        token = _tamper(issuer.issue_access_token(USER), username="mallory")
        with pytest.raises(TokenMalformed):
            issuer.verify_access_token(token)

    def test_tampered_expiry_is_malformed_not_accepted(self):
        issuer = _issuer(refresh_expiry_seconds=-1)
        token = _tamper(issuer.issue_refresh_token(USER["id"]), exp=int(time.time()) + 3600)
        with pytest.raises(TokenMalformed):
            issuer.verify_refresh_token(token)

    @pytest.mark.parametrize(
        "token",
        ["", "abc", "abc.", ".abc", "!!!.deadbeef", "e30.deadbeef", "eyJ.é", "é.deadbeef"],
    )
    def test_garbage_is_malformed(self, token):
        with pytest.raises(TokenMalformed):
            _issuer().verify_access_token(token)

    def test_errors_share_base_class(self):
        assert issubclass(TokenExpired, TokenInvalid)
        assert issubclass(TokenMalformed, TokenInvalid)

    @pytest.mark.parametrize(
        "access, refresh",
        [("", "refresh"), ("access", ""), ("same", "same")],
    )
    def test_rejects_unusable_secrets(self, access, refresh):
        with pytest.raises(ValueError):
            _issuer(access_secret=access, refresh_secret=refresh)


class TestCreateToken:
    def test_signed_payload_without_expiry_is_malformed(self):
        raw = json.dumps({"id": "x"}).encode()
        sig = hmac.new(b"secret", raw, hashlib.sha256).hexdigest()
        token = urlsafe_b64encode(raw).decode().rstrip("=") + "." + sig
        with pytest.raises(TokenMalformed, match="expiry"):
            decode_token(token, "secret")

    def test_explicit_clock(self):
        token = create_token({"id": "x"}, "secret", 60, now=1000)
        assert decode_token(token, "secret", now=1059)["exp"] == 1060
        with pytest.raises(TokenExpired):
            decode_token(token, "secret", now=1061)
