"""
Database abstraction for the BaaS Postgres tables and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from sqlalchemy import Column, Float, Integer, String, create_engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


class DuplicateUserError(Exception):
    """Raised when registering an email that already has an account."""


class DbClient(Protocol):
    """Interface for database access."""

    def create_url(self, name: str, url: str, image: Optional[str] = None) -> "UrlRecord":
        ...

    def rename_url(self, url_id: str, name: str) -> Optional["UrlRecord"]:
        ...

    def list_urls(self) -> list["UrlRecord"]:
        ...

    def delete_url(self, url_id: str) -> bool:
        ...

    def create_upload(
        self, name: str, path: str, url: str, mimetype: str, size: int
    ) -> "UploadRecord":
        ...

    def get_upload(self, upload_id: str) -> Optional["UploadRecord"]:
        ...

    def list_uploads(self) -> list["UploadRecord"]:
        ...

    def list_uploads_before(self, cutoff: float) -> list["UploadRecord"]:
        ...

    def delete_upload(self, upload_id: str) -> bool:
        ...

    def create_user(self, email: str, password_hash: str) -> "UserRecord":
        ...

    def get_user(self, email: str) -> Optional["UserRecord"]:
        ...


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class UrlRecord:
    id: str
    name: str
    url: str
    image: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "image": self.image,
            "created_at": _iso(self.created_at),
        }


@dataclass
class UploadRecord:
    id: str
    name: str
    path: str
    url: str
    mimetype: str
    size: int
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "url": self.url,
            "mimetype": self.mimetype,
            "size": self.size,
            "created_at": _iso(self.created_at),
        }


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        # Never expose the hash.
        return {"id": self.id, "email": self.email, "created_at": _iso(self.created_at)}


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.urls: Dict[str, UrlRecord] = {}
        self.uploads: Dict[str, UploadRecord] = {}
        self.users: Dict[str, UserRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.urls.clear()
        self.uploads.clear()
        self.users.clear()

    def create_url(self, name: str, url: str, image: Optional[str] = None) -> UrlRecord:
        record = UrlRecord(id=str(uuid.uuid4()), name=name, url=url, image=image)
        self.urls[record.id] = record
        return record

    def rename_url(self, url_id: str, name: str) -> Optional[UrlRecord]:
        record = self.urls.get(url_id)
        if record:
            record.name = name
        return record

    def list_urls(self) -> list[UrlRecord]:
        return sorted(self.urls.values(), key=lambda r: r.created_at, reverse=True)

    def delete_url(self, url_id: str) -> bool:
        return self.urls.pop(url_id, None) is not None

    def create_upload(
        self, name: str, path: str, url: str, mimetype: str, size: int
    ) -> UploadRecord:
        record = UploadRecord(
            id=str(uuid.uuid4()),
            name=name,
            path=path,
            url=url,
            mimetype=mimetype,
            size=size,
        )
        self.uploads[record.id] = record
        return record

    def get_upload(self, upload_id: str) -> Optional[UploadRecord]:
        return self.uploads.get(upload_id)

    def list_uploads(self) -> list[UploadRecord]:
        return sorted(self.uploads.values(), key=lambda r: r.created_at, reverse=True)

    def list_uploads_before(self, cutoff: float) -> list[UploadRecord]:
        return [r for r in self.list_uploads() if r.created_at < cutoff]

    def delete_upload(self, upload_id: str) -> bool:
        return self.uploads.pop(upload_id, None) is not None

    def create_user(self, email: str, password_hash: str) -> UserRecord:
        if email in self.users:
            raise DuplicateUserError(email)
        record = UserRecord(id=str(uuid.uuid4()), email=email, password_hash=password_hash)
        self.users[email] = record
        return record

    def get_user(self, email: str) -> Optional[UserRecord]:
        return self.users.get(email)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        engine_kwargs = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            if ":memory:" in database_url or database_url.rstrip("/").endswith(":"):
                # One shared connection, so request threads see the same in-memory database.
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_url_record(row: "UrlRow") -> UrlRecord:
        return UrlRecord(
            id=row.id,
            name=row.name,
            url=row.url,
            image=row.image,
            created_at=row.created_at,
        )

    @staticmethod
    def _to_upload_record(row: "UploadRow") -> UploadRecord:
        return UploadRecord(
            id=row.id,
            name=row.name,
            path=row.path,
            url=row.url,
            mimetype=row.mimetype,
            size=row.size,
            created_at=row.created_at,
        )

    def create_url(self, name: str, url: str, image: Optional[str] = None) -> UrlRecord:
        with self.Session() as session:
            row = UrlRow(
                id=str(uuid.uuid4()),
                name=name,
                url=url,
                image=image,
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            return self._to_url_record(row)

    def rename_url(self, url_id: str, name: str) -> Optional[UrlRecord]:
        with self.Session() as session:
            row = session.get(UrlRow, url_id)
            if not row:
                return None
            row.name = name
            session.commit()
            return self._to_url_record(row)

    def list_urls(self) -> list[UrlRecord]:
        with self.Session() as session:
            stmt = select(UrlRow).order_by(UrlRow.created_at.desc())
            return [self._to_url_record(r) for r in session.execute(stmt).scalars()]

    def delete_url(self, url_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(delete(UrlRow).where(UrlRow.id == url_id))
            session.commit()
            return bool(result.rowcount)

    def create_upload(
        self, name: str, path: str, url: str, mimetype: str, size: int
    ) -> UploadRecord:
        with self.Session() as session:
            row = UploadRow(
                id=str(uuid.uuid4()),
                name=name,
                path=path,
                url=url,
                mimetype=mimetype,
                size=size,
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            return self._to_upload_record(row)

    def get_upload(self, upload_id: str) -> Optional[UploadRecord]:
        with self.Session() as session:
            row = session.get(UploadRow, upload_id)
            return self._to_upload_record(row) if row else None

    def list_uploads(self) -> list[UploadRecord]:
        with self.Session() as session:
            stmt = select(UploadRow).order_by(UploadRow.created_at.desc())
            return [self._to_upload_record(r) for r in session.execute(stmt).scalars()]

    def list_uploads_before(self, cutoff: float) -> list[UploadRecord]:
        with self.Session() as session:
            stmt = (
                select(UploadRow)
                .where(UploadRow.created_at < cutoff)
                .order_by(UploadRow.created_at.asc())
            )
            return [self._to_upload_record(r) for r in session.execute(stmt).scalars()]

    def delete_upload(self, upload_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(delete(UploadRow).where(UploadRow.id == upload_id))
            session.commit()
            return bool(result.rowcount)

    def create_user(self, email: str, password_hash: str) -> UserRecord:
        with self.Session() as session:
            row = UserRow(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=password_hash,
                created_at=time.time(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateUserError(email) from exc
            return UserRecord(
                id=row.id,
                email=row.email,
                password_hash=row.password_hash,
                created_at=row.created_at,
            )

    def get_user(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.email == email)
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return UserRecord(
                id=row.id,
                email=row.email,
                password_hash=row.password_hash,
                created_at=row.created_at,
            )


Base = declarative_base()


class UrlRow(Base):
    __tablename__ = "urls_snapbox"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    image = Column(String, nullable=True)
    created_at = Column(Float, nullable=False, index=True)


class UploadRow(Base):
    __tablename__ = "uploads"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    path = Column(String, nullable=False)
    url = Column(String, nullable=False)
    mimetype = Column(String, nullable=False)
    size = Column(Integer, nullable=False)
    created_at = Column(Float, nullable=False, index=True)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
