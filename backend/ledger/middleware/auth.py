"""Authentication and authorization dependencies.

Provides:
- JWT creation / validation
- ``get_current_identity()`` dependency
- ``get_core()`` dependency wiring the ledger core to the request session
- ``require_operation()`` dependency factory backed by the authorization gate
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.context import CallerIdentity
from ledger.database import get_db
from ledger.models.user import User
from ledger.services.core import LedgerCore

# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: uuid.UUID,
    org_id: uuid.UUID | None = None,
    role_id: uuid.UUID | None = None,
    membership_id: uuid.UUID | None = None,
    expires_minutes: int | None = None,
) -> str:
    """Create a signed JWT carrying the caller's user and membership claims.

    Tokens are normally issued by the external identity service; this exists
    for tooling and tests.
    """
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes if expires_minutes is not None else settings.JWT_EXPIRY_MINUTES
    )
    to_encode: dict[str, Any] = {"sub": str(user_id), "exp": expire}
    if org_id is not None:
        to_encode["org_id"] = str(org_id)
    if role_id is not None:
        to_encode["role_id"] = str(role_id)
    if membership_id is not None:
        to_encode["membership_id"] = str(membership_id)
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _optional_uuid(value: Any) -> uuid.UUID | None:
    if value in (None, ""):
        return None
    return uuid.UUID(str(value))


def decode_identity(token: str) -> CallerIdentity:
    """Decode *token* into a :class:`CallerIdentity`.

    Raises ``JWTError`` for a bad signature or expiry and ``ValueError`` for
    malformed claims.
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    subject = payload.get("sub")
    if not subject:
        raise ValueError("Token has no subject")
    return CallerIdentity(
        user_id=uuid.UUID(str(subject)),
        org_id=_optional_uuid(payload.get("org_id")),
        role_id=_optional_uuid(payload.get("role_id")),
        membership_id=_optional_uuid(payload.get("membership_id")),
    )


# ---------------------------------------------------------------------------
# OAuth2 scheme (token issuance lives outside this service)
# ---------------------------------------------------------------------------

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


# ---------------------------------------------------------------------------
# Current-identity dependency
# ---------------------------------------------------------------------------


async def get_current_identity(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CallerIdentity:
    """Decode the JWT and confirm the user exists and is active.

    Raises ``HTTPException(401)`` when the token is invalid or the user cannot
    be found.  Membership checks happen in the authorization gate.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        identity = decode_identity(token)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == identity.user_id))
    user: User | None = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )
    return identity


async def get_core(db: AsyncSession = Depends(get_db)) -> LedgerCore:
    return LedgerCore.for_session(db)


# ---------------------------------------------------------------------------
# Operation-checking dependency factory
# ---------------------------------------------------------------------------


def require_operation(operation: str):
    """Return a FastAPI dependency that authorizes *operation* for the caller.

    Usage::

        @router.post("/postings", status_code=201)
        async def create_posting(
            body: PostingCreate,
            identity: CallerIdentity = Depends(require_operation("postings.create")),
        ):
            ...
    """

    async def _check_operation(
        identity: CallerIdentity = Depends(get_current_identity),
        core: LedgerCore = Depends(get_core),
    ) -> CallerIdentity:
        await core.gate.authorize(identity, operation)
        return identity

    return _check_operation
