"""
Session store: durable record of issued refresh tokens.

A record is active while revoked is false and expires_at is strictly in
the future. The only explicit transition is active -> revoked; every
state change runs as a conditional UPDATE inside a transaction, so two
concurrent callers racing on the same record cannot both win.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import or_

from models.base_model import utcnow
from models.refresh_token import RefreshToken
from utils.exceptions import SessionNotActive

logger = logging.getLogger(__name__)

# columns exposed by list_active; the token string is deliberately absent
LISTED_COLUMNS = (
    RefreshToken.id,
    RefreshToken.created_at,
    RefreshToken.expires_at,
    RefreshToken.ip_address,
    RefreshToken.user_agent,
)


class SessionStore:
    def __init__(self, storage, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self._clock = clock

    def _active(self, now: datetime):
        return (RefreshToken.revoked.is_(False), RefreshToken.expires_at > now)

    def create(
        self,
        user_id: str,
        token: str,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshToken:
        with self.storage.transaction() as session:
            record = RefreshToken(
                user_id=user_id,
                token=token,
                expires_at=expires_at,
                revoked=False,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            session.add(record)
            session.flush()
        return record

    def find_active(self, token: str, user_id: str) -> Optional[RefreshToken]:
        """The matching record if it is active and owned by user_id, else None."""
        session = self.storage.get_session()
        return (
            session.query(RefreshToken)
            .filter(
                RefreshToken.token == token,
                RefreshToken.user_id == user_id,
                *self._active(self._clock()),
            )
            .first()
        )

    def rotate(
        self,
        old_id: str,
        new_token: str,
        new_user_id: str,
        new_expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshToken:
        """
        Revoke old_id and insert its replacement as one unit.
        Raises SessionNotActive (and changes nothing) if old_id was no longer
        active, e.g. a concurrent refresh already rotated it.
        """
        with self.storage.transaction() as session:
            revoked = (
                session.query(RefreshToken)
                .filter(
                    RefreshToken.id == old_id,
                    RefreshToken.user_id == new_user_id,
                    *self._active(self._clock()),
                )
                .update({RefreshToken.revoked: True}, synchronize_session=False)
            )
            if revoked != 1:
                logger.warning("Refresh token %s was already rotated or revoked", old_id)
                raise SessionNotActive(f"session {old_id} is not active")

            record = RefreshToken(
                user_id=new_user_id,
                token=new_token,
                expires_at=new_expires_at,
                revoked=False,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            session.add(record)
            session.flush()
        return record

    def revoke_all(self, user_id: str) -> int:
        """Revoke every live record of a user; returns how many changed."""
        with self.storage.transaction() as session:
            count = (
                session.query(RefreshToken)
                .filter(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
                .update({RefreshToken.revoked: True}, synchronize_session=False)
            )
        logger.info("Revoked %d session(s) of user %s", count, user_id)
        return count

    def revoke_one(self, session_id: str, user_id: str) -> bool:
        """Revoke one record, only if user_id owns it. False means nothing changed."""
        with self.storage.transaction() as session:
            count = (
                session.query(RefreshToken)
                .filter(
                    RefreshToken.id == session_id,
                    RefreshToken.user_id == user_id,
                    RefreshToken.revoked.is_(False),
                )
                .update({RefreshToken.revoked: True}, synchronize_session=False)
            )
        if count:
            logger.info("Revoked session %s of user %s", session_id, user_id)
        return bool(count)

    def list_active(self, user_id: str) -> List:
        """Active sessions of a user, newest first, without token values."""
        session = self.storage.get_session()
        return (
            session.query(*LISTED_COLUMNS)
            .filter(RefreshToken.user_id == user_id, *self._active(self._clock()))
            .order_by(RefreshToken.created_at.desc())
            .all()
        )

    def sweep_expired(self) -> int:
        """Delete every expired or revoked record; returns how many were removed."""
        now = self._clock()
        with self.storage.transaction() as session:
            count = (
                session.query(RefreshToken)
                .filter(or_(RefreshToken.revoked.is_(True), RefreshToken.expires_at <= now))
                .delete(synchronize_session=False)
            )
        logger.info("Swept %d expired or revoked session(s)", count)
        return count
