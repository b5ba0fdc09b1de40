"""
FastAPI Dependencies for Authentication, Authorization and service wiring.

Key patterns:
1. get_current_identity: Decodes the identity token, returns an Identity
2. require_roles: Role gate built on top of get_current_identity
3. Store handles (MongoDB collection, Redis client, S3 client) are built once
   by the providers below and injected into each service. Tests replace them
   with app.dependency_overrides.

Security model:
- Tokens are issued by the identity service and carry sub, role, faculty_id
- JWT read from the access_token cookie or the Authorization header
- Project ownership and chat membership are checked in the services
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Cookie, Depends, Header, HTTPException, status
from jose import JWTError, jwt
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import get_settings
from app.db.models import Role
from app.db.mongo import get_mongo_database
from app.db.session import AsyncSessionLocal, get_db
from app.schemas.user import Identity
from app.services.chat_rooms import ChatRooms
from app.services.chat_store import ChatRoomStore
from app.services.message_ingestion import MessageIngestion
from app.services.read_tracker import ReadTracker
from app.services.realtime import RealtimePublisher, get_redis_client
from app.services.reconciliation import Reconciler
from app.services.roster_sync import RosterSynchronizer
from app.services.s3 import S3Service

settings = get_settings()


# =============================================================================
# JWT UTILITIES
# =============================================================================


def create_access_token(user_id: UUID, role: Role, faculty_id: UUID | None = None) -> str:
    """
    Create a JWT access token carrying the caller's identity.

    Token payload contains:
    - sub: user_id as string (standard JWT subject claim)
    - role: USER, FACULTY or ADMIN
    - faculty_id: faculty profile id (FACULTY tokens only)
    - exp: expiration timestamp

    Tokens are normally minted by the identity service; this helper exists
    for local tooling and tests.
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": str(user_id),
        "role": Role(role).value,
        "exp": expire,
    }
    if faculty_id is not None:
        payload["faculty_id"] = str(faculty_id)
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Identity | None:
    """
    Decode and validate a JWT access token.

    Returns the Identity if valid, None if invalid/expired/malformed.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("sub") is None:
            return None
        return Identity(
            user_id=payload["sub"],
            role=payload.get("role", Role.USER),
            faculty_id=payload.get("faculty_id"),
        )
    except (JWTError, ValidationError, ValueError):
        return None


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
    access_token: Annotated[str | None, Cookie()] = None,
) -> str:
    """
    Extract JWT token from request.

    Supports two methods (in order of preference):
    1. HttpOnly cookie named 'access_token'
    2. Authorization header: 'Bearer <token>'
    """
    if access_token:
        return access_token

    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_identity(
    token: Annotated[str, Depends(get_token_from_request)],
) -> Identity:
    """
    Validate JWT and return the caller's identity.

    Raises 401 if the token is missing, invalid, or expired.
    """
    identity = decode_access_token(token)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def require_roles(*roles: Role) -> Callable:
    """
    Dependency factory restricting a route to the given roles.

        @router.post("/")
        async def create(identity: Annotated[Identity, Depends(require_roles(Role.FACULTY))]):
            ...
    """

    async def _check(identity: Annotated[Identity, Depends(get_current_identity)]) -> Identity:
        if identity.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return identity

    return _check


# Type aliases for dependency injection
CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
DbSession = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# STORE PROVIDERS
# =============================================================================


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request session."""
    return AsyncSessionLocal


@lru_cache
def get_chat_store() -> ChatRoomStore:
    return ChatRoomStore(get_mongo_database()[settings.mongo_chat_collection])


@lru_cache
def get_publisher() -> RealtimePublisher:
    return RealtimePublisher(get_redis_client(), settings.realtime_channel_prefix)


@lru_cache
def get_object_store() -> S3Service:
    return S3Service()


@lru_cache
def get_roster_sync() -> RosterSynchronizer:
    """Process-wide synchronizer; it tracks in-flight tasks so shutdown can drain them."""
    return RosterSynchronizer(
        AsyncSessionLocal,
        get_chat_store(),
        get_publisher(),
        max_attempts=settings.roster_sync_max_attempts,
        base_delay=settings.roster_sync_base_delay,
    )


ChatStoreDep = Annotated[ChatRoomStore, Depends(get_chat_store)]
PublisherDep = Annotated[RealtimePublisher, Depends(get_publisher)]


# =============================================================================
# SERVICE PROVIDERS
# =============================================================================


def get_chat_rooms(chat_store: ChatStoreDep, publisher: PublisherDep) -> ChatRooms:
    return ChatRooms(chat_store, publisher)


def get_message_ingestion(
    chat_store: ChatStoreDep,
    publisher: PublisherDep,
    object_store: Annotated[S3Service, Depends(get_object_store)],
) -> MessageIngestion:
    return MessageIngestion(chat_store, object_store, publisher, settings)


def get_read_tracker(chat_store: ChatStoreDep, publisher: PublisherDep) -> ReadTracker:
    return ReadTracker(chat_store, publisher)


def get_reconciler(
    chat_store: ChatStoreDep,
    publisher: PublisherDep,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> Reconciler:
    return Reconciler(session_factory, chat_store, publisher)


ChatRoomsDep = Annotated[ChatRooms, Depends(get_chat_rooms)]
MessageIngestionDep = Annotated[MessageIngestion, Depends(get_message_ingestion)]
ReadTrackerDep = Annotated[ReadTracker, Depends(get_read_tracker)]
ReconcilerDep = Annotated[Reconciler, Depends(get_reconciler)]
RosterSyncDep = Annotated[RosterSynchronizer, Depends(get_roster_sync)]
