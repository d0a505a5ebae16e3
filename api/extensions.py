"""
Per-app wiring of the auth components.
Everything hangs off app.extensions so each app (and each test) owns its
own storage handle; handlers reach the components through the getters.
"""
from flask import Flask, current_app

from models.db_storage import DBStorage
from utils.credentials import CredentialVerifier
from utils.security import TokenIssuer, build_password_hasher
from utils.sessions import SessionStore


def init_extensions(app: Flask, storage: DBStorage | None = None) -> DBStorage:
    if storage is None:
        storage = DBStorage(app.config["DATABASE_URL"], echo=app.config.get("SQL_ECHO", False))
        storage.reload()

    hasher = build_password_hasher(
        work_factor=app.config["HASH_WORK_FACTOR"],
        memory_cost=app.config["HASH_MEMORY_COST"],
    )
    app.extensions["storage"] = storage
    app.extensions["credentials"] = CredentialVerifier(storage, hasher)
    app.extensions["token_issuer"] = TokenIssuer.from_config(app.config)
    app.extensions["session_store"] = SessionStore(storage)
    return storage


def get_storage() -> DBStorage:
    return current_app.extensions["storage"]


def get_credentials() -> CredentialVerifier:
    return current_app.extensions["credentials"]


def get_token_issuer() -> TokenIssuer:
    return current_app.extensions["token_issuer"]


def get_session_store() -> SessionStore:
    return current_app.extensions["session_store"]
