"""Unit tests for auth/tokens.py -- TokenCodec, SigningKeys, password helpers.

Covers:
- access tokens carry sub/iat/exp; refresh tokens carry no exp
- a token signed with one secret never verifies against the other
- access expiry boundary is now >= exp
- credential verification distinguishes unknown account from bad password
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import NotFoundError, UnauthorizedError
from auth.tokens import (
    InvalidTokenError,
    SigningKeys,
    TokenCodec,
    TokenKind,
    hash_password,
    verify_credentials,
    verify_password,
)
from tests._helpers.auth import ACCESS_SECRET, REFRESH_SECRET, TEST_EMAIL, TEST_PASSWORD

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(SigningKeys(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET))


class TestSigningKeys:
    def test_equal_secrets_rejected(self) -> None:
        with pytest.raises(ValueError):
            SigningKeys(access_secret=ACCESS_SECRET, refresh_secret=ACCESS_SECRET)

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            SigningKeys(access_secret="", refresh_secret=REFRESH_SECRET)


class TestClaims:
    def test_access_token_expires_one_hour_after_issue(self, codec: TokenCodec) -> None:
        token = codec.issue_access_token("7", now=NOW)
        claims = jwt.get_unverified_claims(token)
        assert claims["sub"] == "7"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == 3600

    def test_refresh_token_has_no_exp(self, codec: TokenCodec) -> None:
        token = codec.issue_refresh_token("7", now=NOW)
        claims = jwt.get_unverified_claims(token)
        assert claims["sub"] == "7"
        assert claims["type"] == "refresh"
        assert "exp" not in claims

    def test_tokens_issued_in_same_second_differ(self, codec: TokenCodec) -> None:
        assert codec.issue_refresh_token("7", now=NOW) != codec.issue_refresh_token("7", now=NOW)
        assert codec.issue_access_token("7", now=NOW) != codec.issue_access_token("7", now=NOW)


class TestVerify:
    def test_round_trip(self, codec: TokenCodec) -> None:
        assert codec.verify(codec.issue_access_token("7"), TokenKind.access) == "7"
        assert codec.verify(codec.issue_refresh_token("7"), TokenKind.refresh) == "7"

    @pytest.mark.parametrize("subject", ["1", "42", "999999"])
    def test_access_token_never_verifies_as_refresh(self, codec: TokenCodec, subject: str) -> None:
        with pytest.raises(InvalidTokenError):
            codec.verify(codec.issue_access_token(subject), TokenKind.refresh)

    @pytest.mark.parametrize("subject", ["1", "42", "999999"])
    def test_refresh_token_never_verifies_as_access(self, codec: TokenCodec, subject: str) -> None:
        with pytest.raises(InvalidTokenError):
            codec.verify(codec.issue_refresh_token(subject), TokenKind.access)

    def test_wrong_secret_rejected(self, codec: TokenCodec) -> None:
        other = TokenCodec(SigningKeys(access_secret="x" * 40, refresh_secret="y" * 40))
        with pytest.raises(InvalidTokenError):
            codec.verify(other.issue_refresh_token("7"), TokenKind.refresh)

    def test_type_claim_checked_even_with_right_secret(self) -> None:
        # Same secret for both kinds would only happen through misconfiguration
        # that SigningKeys refuses, so forge the token directly.
        forged = jwt.encode({"sub": "7", "type": "access"}, REFRESH_SECRET, algorithm="HS256")
        codec = TokenCodec(SigningKeys(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET))
        with pytest.raises(InvalidTokenError):
            codec.verify(forged, TokenKind.refresh)

    def test_garbage_rejected(self, codec: TokenCodec) -> None:
        with pytest.raises(InvalidTokenError):
            codec.verify("not-a-jwt", TokenKind.access)

    def test_access_expiry_boundary(self, codec: TokenCodec) -> None:
        token = codec.issue_access_token("7", now=NOW)
        assert codec.verify(token, TokenKind.access, now=NOW + timedelta(seconds=3599)) == "7"
        with pytest.raises(InvalidTokenError):
            codec.verify(token, TokenKind.access, now=NOW + timedelta(seconds=3600))

    def test_refresh_token_does_not_expire_by_itself(self, codec: TokenCodec) -> None:
        token = codec.issue_refresh_token("7", now=NOW)
        assert codec.verify(token, TokenKind.refresh, now=NOW + timedelta(days=365)) == "7"


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("secret1")
        assert hashed != "secret1"
        assert verify_password("secret1", hashed)
        assert not verify_password("secret2", hashed)

    def test_malformed_hash_is_a_mismatch(self) -> None:
        assert verify_password("secret1", "not-a-bcrypt-hash") is False


class TestVerifyCredentials:
    def test_email_lookup_is_case_insensitive(self, auth_state) -> None:
        user = verify_credentials(auth_state.user_store, TEST_EMAIL.upper(), TEST_PASSWORD)
        assert user.id == auth_state.user_id

    def test_unknown_email(self, auth_state) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            verify_credentials(auth_state.user_store, "nobody@x.com", "anything1")
        assert exc_info.value.message == "User not found"

    def test_wrong_password(self, auth_state) -> None:
        with pytest.raises(UnauthorizedError) as exc_info:
            verify_credentials(auth_state.user_store, TEST_EMAIL, "wrongpass1")
        assert exc_info.value.message == "Invalid password"
