"""Base model utilities for the ledger core.

Provides a UUID primary-key mixin so every model automatically gets
an ``id`` column, and a created-at mixin shared by the append-style tables.
"""
from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Uuid, func
from sqlalchemy.orm import Mapped, mapped_column


class UUIDPrimaryKeyMixin:
    """Mixin that adds a UUID primary key column named ``id``."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


class CreatedAtMixin:
    """Mixin that adds a server-stamped ``created_at`` column."""

    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )
