"""Bearer-token authentication for API callers."""

import datetime
from uuid import UUID

from jose import JWTError, jwt
from sqlalchemy.orm import Session, sessionmaker

from shared.db.repositories import AuthUserRepository

from dispatch_service.config import AuthConfig
from dispatch_service.errors import Unauthorized


def create_access_token(
    user_id: UUID,
    config: AuthConfig,
    expires_delta: datetime.timedelta = datetime.timedelta(hours=1),
) -> str:
    claims: dict[str, object] = {
        "sub": str(user_id),
        "exp": datetime.datetime.now(datetime.UTC) + expires_delta,
    }
    if config.jwt_audience:
        claims["aud"] = config.jwt_audience
    return jwt.encode(claims, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(token: str, config: AuthConfig) -> UUID:
    """Return the user id carried in a valid token's ``sub`` claim."""
    options = {"verify_aud": bool(config.jwt_audience)}
    try:
        claims = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
            options=options,
        )
    except JWTError as exc:
        raise Unauthorized("Unauthorized") from exc

    try:
        return UUID(str(claims["sub"]))
    except (KeyError, ValueError) as exc:
        raise Unauthorized("Unauthorized") from exc


def authenticate(
    authorization: str | None,
    config: AuthConfig,
    session_factory: sessionmaker[Session],
) -> UUID:
    """Resolve the caller from an ``Authorization: Bearer ...`` header.

    The token must be valid and name a user that still exists.
    """
    if not authorization:
        raise Unauthorized("No authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Unauthorized")

    user_id = decode_access_token(token.strip(), config)
    with session_factory() as session:
        if AuthUserRepository(session).get_by_id(user_id) is None:
            raise Unauthorized("Unauthorized")
    return user_id
