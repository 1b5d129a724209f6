from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from shared.errors import AuthenticationError

ALGORITHM = "HS256"

INVALID_TOKEN_MESSAGE = "Invalid token. Please log in again."
EXPIRED_TOKEN_MESSAGE = "Your token has expired! Please log in again."


@dataclass(frozen=True)
class TokenClaims:
    id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class TokenService:
    """Issues and verifies HS256 bearer tokens carrying id, email and role."""

    def __init__(self, secret: str, expires_minutes: int = 60, algorithm: str = ALGORITHM):
        self._secret = secret
        self._algorithm = algorithm
        self.expires_minutes = expires_minutes

    def issue(self, claims: dict, expires_delta: timedelta = None) -> str:
        """Creates a JWT access token with a UTC expiration."""
        to_encode = {
            "sub": str(claims["id"]),
            "email": claims["email"],
            "role": claims["role"],
        }
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=self.expires_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """Decodes the JWT. Expired and invalid tokens raise distinct 401s."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise AuthenticationError(EXPIRED_TOKEN_MESSAGE)
        except JWTError:
            raise AuthenticationError(INVALID_TOKEN_MESSAGE)

        try:
            return TokenClaims(id=int(payload["sub"]), email=payload["email"], role=payload["role"])
        except (KeyError, TypeError, ValueError):
            raise AuthenticationError(INVALID_TOKEN_MESSAGE)
