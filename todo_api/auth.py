"""
Stateless bearer tokens: HS256 JWTs signed with the server-held SECRET_KEY.

Validation never touches the database, so a token stays usable until it
expires. Every token carries a random ``jti``; revoking tokens early would mean
checking that id against an external denylist inside ``verify_token``.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4
import logging

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt

from todo_api import config
from todo_api.errors import TokenError, TokenExpiredError, TokenInvalidError, TokenMalformedError, UnauthorizedError

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    jti: str


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: Optional[str]
    jti: str
    expires_at: datetime


def create_access_token(
    user_id: int,
    email: str,
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
) -> IssuedToken:
    issued_at = datetime.now(timezone.utc).replace(microsecond=0)
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    expires_at = issued_at + expires_delta
    jti = uuid4().hex

    to_encode = {
        "sub": str(user_id),
        "email": email,
        "jti": jti,
        "iat": issued_at,
        "exp": expires_at,
        "iss": config.TOKEN_ISSUER,
        "aud": config.TOKEN_AUDIENCE,
    }
    token = jwt.encode(to_encode, secret_key or config.SECRET_KEY, algorithm=config.ALGORITHM)
    return IssuedToken(token=token, expires_at=expires_at, jti=jti)


def verify_token(token: str, secret_key: Optional[str] = None) -> TokenClaims:
    """
    Checks a token and returns its claims.

    Raises TokenMalformedError if the string is not a decodable JWT at all,
    TokenInvalidError if the signature, algorithm, issuer, audience or claims
    are wrong, and TokenExpiredError once the expiry has passed. The signature
    is checked before the expiry, so a tampered expired token is Invalid.
    """
    try:
        jwt.get_unverified_header(token)
        jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise TokenMalformedError() from exc

    try:
        payload = jwt.decode(
            token,
            secret_key or config.SECRET_KEY,
            algorithms=[config.ALGORITHM],
            audience=config.TOKEN_AUDIENCE,
            issuer=config.TOKEN_ISSUER,
            options={
                "require_exp": True, "require_iat": True, "require_sub": True, "require_jti": True,
                "require_aud": True, "require_iss": True, "leeway": 0,
            },
        )
    except ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except JWTError as exc:
        raise TokenInvalidError() from exc

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise TokenInvalidError() from exc

    return TokenClaims(
        user_id=user_id,
        email=payload.get("email"),
        jti=payload["jti"],
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


def get_current_user_id(token: Optional[str] = Depends(oauth2_scheme)) -> int:
    """
    FastAPI dependency: the id of the caller, taken from the bearer token alone.
    """
    if not token:
        raise UnauthorizedError()
    try:
        claims = verify_token(token)
    except TokenError as exc:
        logger.info("Rejected bearer token: %s", type(exc).__name__)
        raise
    return claims.user_id
