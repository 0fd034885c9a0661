from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from orders_service.errors import Forbidden, Unauthenticated
from orders_service.schemas import Principal

# matches the users service, which issues the tokens
DEFAULT_TOKEN_LIFETIME = timedelta(hours=96)


def create_access_token(
    user_id: int,
    secret: str,
    algorithm: str = "HS256",
    username: Optional[str] = None,
    expires_in: timedelta = DEFAULT_TOKEN_LIFETIME,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "username": username,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise ValueError("Invalid token") from e


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an Authorization header value, or None if there isn't one."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    # a non-Bearer scheme counts as no token at all (401), not a bad token (403)
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


class TokenVerifier:
    """Turns a bearer token into a Principal. Pure: no I/O beyond the shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: Optional[str]) -> Principal:
        if not token:
            raise Unauthenticated()

        try:
            payload = decode_token(token, self.secret, self.algorithm)
        except ValueError:
            raise Forbidden()

        user_id = payload.get("id", payload.get("sub"))
        if user_id is None or isinstance(user_id, bool):
            raise Forbidden("Invalid token payload")
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            raise Forbidden("Invalid token payload")

        return Principal(user_id=user_id, username=payload.get("username"))
