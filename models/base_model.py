#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixins for the Taskboard API.

- UUID primary key (String(36)) with defaults
- created_at / updated_at timestamps (naive UTC, set in Python so they
  keep sub-second precision on every backend)
- SoftDeleteMixin for records that are never hard-deleted

Persistence (add/commit) is the caller's job through a DBStorage handle.
"""

from __future__ import annotations

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base

# Declarative base for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid_str() -> str:
    """Return a canonical UUIDv4 string (36 chars, with hyphens)."""
    return str(uuid.uuid4())


class BaseModel:
    """
    Base mixin for all persistent models: id, created_at, updated_at.
    """

    id = Column(String(36), primary_key=True, default=_uuid_str, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __init__(self, *args, **kwargs):
        """
        Allow attribute initialization via kwargs without requiring a session here.
        """
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)
        # Ensure an id exists if caller passed none
        if getattr(self, "id", None) is None:
            self.id = _uuid_str()


class SoftDeleteMixin:
    """
    Adds a deleted_at timestamp. Place this mixin BEFORE BaseModel in the
    class base list.
    """

    deleted_at = Column(DateTime, nullable=True)

    def soft_delete(self):
        """Mark as deleted; the caller commits."""
        self.deleted_at = utcnow()
