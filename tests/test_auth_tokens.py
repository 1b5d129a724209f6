from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from shared.errors import AuthenticationError
from shared.security.jwt_handler import EXPIRED_TOKEN_MESSAGE, INVALID_TOKEN_MESSAGE, TokenService

from .conftest import JWT_SECRET

CLAIMS = {"id": 7, "email": "ada@shop.io", "role": "admin"}


def test_issued_token_round_trips_claims(tokens):
    claims = tokens.verify(tokens.issue(CLAIMS))

    assert claims.id == 7
    assert claims.email == "ada@shop.io"
    assert claims.is_admin


def test_expired_token_has_its_own_message(tokens):
    token = tokens.issue(CLAIMS, expires_delta=timedelta(seconds=-5))

    with pytest.raises(AuthenticationError) as exc:
        tokens.verify(token)
    assert exc.value.message == EXPIRED_TOKEN_MESSAGE
    assert exc.value.status_code == 401


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        TokenService("another-secret").issue(CLAIMS),
        jwt.encode(
            {"sub": "7", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}, JWT_SECRET, algorithm="HS256"
        ),
    ],
    ids=["malformed", "wrong-signature", "missing-claims"],
)
def test_invalid_tokens(tokens, token):
    with pytest.raises(AuthenticationError) as exc:
        tokens.verify(token)
    assert exc.value.message == INVALID_TOKEN_MESSAGE


def test_password_hashing(hasher):
    hashed = hasher.hash("correct horse")

    assert hashed != "correct horse"
    assert hasher.verify("correct horse", hashed)
    assert not hasher.verify("wrong horse", hashed)
    assert hasher.hash("correct horse") != hashed  # salted
