"""
Credential verifier: creates users with hashed passwords and checks
email/password pairs against them.
"""
from __future__ import annotations

import logging

from argon2 import PasswordHasher
from sqlalchemy.exc import IntegrityError

from models.user import User, Role
from utils.exceptions import EmailAlreadyRegistered, InvalidCredentials
from utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)


class CredentialVerifier:
    def __init__(self, storage, hasher: PasswordHasher):
        self.storage = storage
        self.hasher = hasher
        self._dummy_hash = None

    def register(self, email: str, password: str, name: str | None = None, role: Role = Role.USER) -> User:
        """Create an active, unblocked user. Raises EmailAlreadyRegistered."""
        with self.storage.transaction() as session:
            if session.query(User.id).filter(User.email == email).first():
                raise EmailAlreadyRegistered(f"email {email} already registered")

            user = User(
                email=email,
                password_hash=hash_password(self.hasher, password),
                name=name or None,
                role=role,
                active=True,
                blocked=False,
            )
            session.add(user)
            try:
                session.flush()
            except IntegrityError:
                # lost a race against a concurrent registration of the same email
                raise EmailAlreadyRegistered(f"email {email} already registered")

        logger.info("Registered user %s", user.id)
        return user

    def verify_login(self, email: str, password: str) -> User:
        """
        Return the user owning these credentials.
        Unknown email, soft-deleted account and wrong password all raise the
        same InvalidCredentials.
        """
        session = self.storage.get_session()
        user = session.query(User).filter(User.email == email).first()

        if user is None:
            # burn a hash comparison so unknown emails take as long as known ones
            verify_password(self.hasher, password, self._get_dummy_hash())
            logger.info("Login failed: unknown email")
            raise InvalidCredentials("unknown email")
        if user.deleted_at is not None:
            logger.info("Login failed: user %s is deleted", user.id)
            raise InvalidCredentials("deleted user")
        if not verify_password(self.hasher, password, user.password_hash):
            logger.info("Login failed: bad password for user %s", user.id)
            raise InvalidCredentials("bad password")
        return user

    def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = hash_password(self.hasher, "not-a-real-password")
        return self._dummy_hash
