"""
Dependency wiring for the FastAPI app.

Clients are built lazily from the app's ``Settings`` and reused for every
request served with that settings instance.
"""

from __future__ import annotations

import logging

from fastapi import Depends

from snapbox.codes import InMemoryCodeStore, RedisCodeStore, VerificationCodeStore
from snapbox.config import Settings, get_settings
from snapbox.db import DbClient, InMemoryDbClient, PostgresDbClient
from snapbox.mailer import InMemoryMailer, Mailer, SmtpMailer
from snapbox.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)

# id(settings) -> (settings, client); the settings reference keeps the id from being reused.
_db_clients: dict[int, tuple[Settings, DbClient]] = {}
_storage_clients: dict[int, tuple[Settings, StorageClient]] = {}
_code_stores: dict[int, tuple[Settings, VerificationCodeStore]] = {}
_mailers: dict[int, tuple[Settings, Mailer]] = {}


def get_db_client(settings: Settings = Depends(get_settings)) -> DbClient:
    """
    Return the DB client for ``settings`` so in-memory state persists across requests.
    """
    cached = _db_clients.get(id(settings))
    if cached:
        return cached[1]

    if settings.use_in_memory_backends or not settings.database_url:
        logger.warning("DATABASE_URL not set; using in-memory database")
        client = InMemoryDbClient()
    else:
        client = PostgresDbClient(settings.database_url)
    _db_clients[id(settings)] = (settings, client)
    return client


def get_storage_client(settings: Settings = Depends(get_settings)) -> StorageClient:
    cached = _storage_clients.get(id(settings))
    if cached:
        return cached[1]

    if settings.use_in_memory_backends or not settings.storage_endpoint:
        logger.warning("STORAGE_ENDPOINT not set; using in-memory storage")
        client = InMemoryStorageClient()
    else:
        client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint,
            access_key_id=settings.storage_access_key_id or "",
            secret_access_key=settings.storage_secret_access_key or "",
            public_base_url=settings.resolved_public_url(),
            addressing_style=settings.storage_addressing_style,
        )
    _storage_clients[id(settings)] = (settings, client)
    return client


def get_code_store(settings: Settings = Depends(get_settings)) -> VerificationCodeStore:
    """
    Return the verification-code store. Redis is required once more than one
    worker process serves requests.
    """
    cached = _code_stores.get(id(settings))
    if cached:
        return cached[1]

    if settings.redis_url and not settings.use_in_memory_backends:
        store = RedisCodeStore(
            url=settings.redis_url,
            ttl_seconds=settings.verification_code_ttl_seconds,
            key_prefix=settings.redis_code_prefix,
        )
    else:
        store = InMemoryCodeStore(ttl_seconds=settings.verification_code_ttl_seconds)
    _code_stores[id(settings)] = (settings, store)
    return store


def get_mailer(settings: Settings = Depends(get_settings)) -> Mailer:
    cached = _mailers.get(id(settings))
    if cached:
        return cached[1]

    if settings.use_in_memory_backends or not settings.email_host:
        logger.warning("EMAIL_HOST not set; outgoing mail is kept in memory")
        mailer = InMemoryMailer()
    else:
        mailer = SmtpMailer(
            host=settings.email_host,
            port=settings.email_port,
            username=settings.email_user,
            password=settings.email_pass,
            sender_name=settings.email_sender_name,
            timeout=settings.email_timeout_seconds,
        )
    _mailers[id(settings)] = (settings, mailer)
    return mailer
