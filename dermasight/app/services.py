"""
Business Logic — Services Layer
=================================
Database ORM models and the two repositories the client consumes:
scans (insert-only history) and profiles (one per user identity).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from dermasight.app.config import DATABASE_URL
from dermasight.app.errors import DuplicateProfile, PersistenceError, ProfileNotFound
from dermasight.app.schemas import (
    NewScan,
    Profile,
    ProfileUpdate,
    Role,
    Scan,
    ScanWithOwner,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Database setup (SQLite by default, any SQLAlchemy URL via DATABASE_URL)
# ---------------------------------------------------------------------------
Base = declarative_base()


def make_engine(url: str = DATABASE_URL, **kwargs):
    """Create an engine; SQLite connections are shared across Streamlit threads."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

SessionFactory = Callable[[], Session]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanRecord(Base):
    """One persisted classification result."""
    __tablename__ = "scans"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    disease_name = Column(String(256), nullable=False)
    confidence = Column(Integer, nullable=False)
    recommendation = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    status = Column(String(16), nullable=False, default="normal")


class ProfileRecord(Base):
    """Per-user account metadata. ``id`` is the identity provider's user id."""
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(256), nullable=False, default="")
    email = Column(String(256), nullable=False)
    role = Column(String(16), nullable=False, default=Role.PATIENT.value)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


def init_db(bind=None) -> None:
    """Create tables if they don't exist."""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("[✓] Database tables initialised")


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

class ScanRepository:
    """Insert and list scans. There is deliberately no update or delete."""

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def insert(self, scan: NewScan) -> Scan:
        session = self._session_factory()
        try:
            record = ScanRecord(
                user_id=scan.user_id,
                image_url=scan.image_url,
                disease_name=scan.disease_name,
                confidence=scan.confidence,
                recommendation=scan.recommendation,
                status=scan.status,
                created_at=scan.created_at or _utcnow(),
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            return Scan.model_validate(record)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("[⚠] Scan write failed: %s", exc)
            raise PersistenceError(f"Failed to save scan: {exc}") from exc
        finally:
            session.close()

    def list_by_user(self, user_id: str, newest_first: bool = True) -> list[Scan]:
        session = self._session_factory()
        try:
            rows = (
                session.query(ScanRecord)
                .filter(ScanRecord.user_id == user_id)
                .order_by(_created_order(newest_first))
                .all()
            )
            return [Scan.model_validate(r) for r in rows]
        except SQLAlchemyError as exc:
            logger.error("[⚠] Scan history read failed: %s", exc)
            raise PersistenceError(f"Failed to load scans: {exc}") from exc
        finally:
            session.close()

    def list_all(self, newest_first: bool = True) -> list[ScanWithOwner]:
        """Every user's scans, joined to the owner's name and email."""
        session = self._session_factory()
        try:
            rows = (
                session.query(ScanRecord, ProfileRecord.full_name, ProfileRecord.email)
                .outerjoin(ProfileRecord, ProfileRecord.id == ScanRecord.user_id)
                .order_by(_created_order(newest_first))
                .all()
            )
            return [
                ScanWithOwner(
                    **Scan.model_validate(record).model_dump(),
                    owner_name=full_name,
                    owner_email=email,
                )
                for record, full_name, email in rows
            ]
        except SQLAlchemyError as exc:
            logger.error("[⚠] Scan listing failed: %s", exc)
            raise PersistenceError(f"Failed to load scans: {exc}") from exc
        finally:
            session.close()

    def count_by_user(self, user_id: str) -> int:
        session = self._session_factory()
        try:
            return (
                session.query(ScanRecord)
                .filter(ScanRecord.user_id == user_id)
                .count()
            )
        except SQLAlchemyError as exc:
            logger.error("[⚠] Scan count failed: %s", exc)
            raise PersistenceError(f"Failed to count scans: {exc}") from exc
        finally:
            session.close()


class ProfileRepository:
    """One profile per user identity. Only the display name is editable."""

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def get(self, user_id: str) -> Profile | None:
        session = self._session_factory()
        try:
            record = session.get(ProfileRecord, user_id)
            return Profile.model_validate(record) if record is not None else None
        except SQLAlchemyError as exc:
            logger.error("[⚠] Profile read failed: %s", exc)
            raise PersistenceError(f"Failed to load profile: {exc}") from exc
        finally:
            session.close()

    def create(
        self,
        user_id: str,
        email: str,
        full_name: str = "",
        role: Role = Role.PATIENT,
    ) -> Profile:
        """Provision the profile for a newly signed-in identity."""
        session = self._session_factory()
        try:
            record = ProfileRecord(
                id=user_id,
                email=email,
                full_name=full_name,
                role=Role(role).value,
                created_at=_utcnow(),
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            logger.info("Provisioned %s profile for user %s", record.role, user_id)
            return Profile.model_validate(record)
        except IntegrityError as exc:
            session.rollback()
            raise DuplicateProfile(f"Profile already exists for user {user_id}") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("[⚠] Profile write failed: %s", exc)
            raise PersistenceError(f"Failed to create profile: {exc}") from exc
        finally:
            session.close()

    def update(self, user_id: str, changes: ProfileUpdate) -> Profile:
        session = self._session_factory()
        try:
            record = session.get(ProfileRecord, user_id)
            if record is None:
                raise ProfileNotFound(f"No profile for user {user_id}")
            record.full_name = changes.full_name
            session.commit()
            session.refresh(record)
            return Profile.model_validate(record)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("[⚠] Profile update failed: %s", exc)
            raise PersistenceError(f"Failed to update profile: {exc}") from exc
        finally:
            session.close()


def _created_order(newest_first: bool):
    return ScanRecord.created_at.desc() if newest_first else ScanRecord.created_at.asc()
