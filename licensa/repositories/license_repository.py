"""
SQLAlchemy persistence for licenses and the settings singleton.

Every method runs inside the caller's session (one per request) and turns
driver failures into ``StorageError`` after rolling back.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from licensa.core.errors import DuplicateKeyError, NotFound, StorageError
from licensa.models.license import License, utcnow
from licensa.models.settings import AppSettings

logger = logging.getLogger(__name__)

LICENSE_FIELDS = {
    "key",
    "client_name",
    "email",
    "discord_id",
    "description",
    "is_active",
    "expires_at",
    "last_checked_at",
}
SETTINGS_FIELDS = {
    "discord_token",
    "discord_admin_id",
    "discord_logs_channel_id",
    "discord_update_channel_id",
    "smtp_host",
    "smtp_port",
    "smtp_user",
    "smtp_password",
    "smtp_from",
    "license_email_template",
}


class LicenseRepository:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Storage failure during %s", operation, exc_info=True)
            raise StorageError(f"Storage failure during {operation}") from exc

    def list_licenses(self) -> list[License]:
        stmt = select(License).order_by(License.created_at.desc(), License.id.desc())
        with self._guard("list_licenses"):
            return list(self.db.execute(stmt).scalars().all())

    def get_by_id(self, license_id: int) -> Optional[License]:
        with self._guard("get_by_id"):
            return self.db.get(License, license_id)

    def get_by_key(self, key: str) -> Optional[License]:
        stmt = select(License).where(License.key == key)
        with self._guard("get_by_key"):
            return self.db.execute(stmt).scalar_one_or_none()

    def create(self, **fields: Any) -> License:
        record = License(**_pick(fields, LICENSE_FIELDS))
        try:
            self.db.add(record)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if self._key_taken(fields.get("key")):
                logger.warning("License key collision on insert")
                raise DuplicateKeyError() from exc
            logger.error("License insert rejected by a constraint", exc_info=True)
            raise StorageError("Storage failure during create") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Storage failure during create", exc_info=True)
            raise StorageError("Storage failure during create") from exc
        with self._guard("create"):
            self.db.refresh(record)
        return record

    def _key_taken(self, key: Optional[str]) -> bool:
        if not key:
            return False
        return self.get_by_key(key) is not None

    def update(self, license_id: int, **fields: Any) -> License:
        with self._guard("update"):
            record = self.db.get(License, license_id)
            if record is None:
                raise NotFound()
            for name, value in _pick(fields, LICENSE_FIELDS).items():
                setattr(record, name, value)
            self.db.commit()
            self.db.refresh(record)
            return record

    def delete(self, license_id: int) -> None:
        with self._guard("delete"):
            self.db.execute(delete(License).where(License.id == license_id))
            self.db.commit()

    def mark_checked(self, license_id: int, when: Optional[datetime] = None) -> None:
        stmt = update(License).where(License.id == license_id).values(last_checked_at=when or utcnow())
        with self._guard("mark_checked"):
            self.db.execute(stmt)
            self.db.commit()

    def license_stats(self, now: Optional[datetime] = None) -> dict[str, int]:
        """Counts each license once: revoked first, then expired, else valid."""
        current = now or utcnow()
        lapsed = (License.expires_at.is_not(None)) & (License.expires_at <= current)
        stmt = select(
            func.count(License.id),
            func.coalesce(func.sum(case((License.is_active.is_(False), 1), else_=0)), 0),
            func.coalesce(func.sum(case((License.is_active.is_(True) & lapsed, 1), else_=0)), 0),
        )
        with self._guard("license_stats"):
            total, revoked, expired = self.db.execute(stmt).one()
        total, revoked, expired = int(total), int(revoked), int(expired)
        return {
            "total": total,
            "valid": total - revoked - expired,
            "revoked": revoked,
            "expired": expired,
        }

    def get_settings(self) -> Optional[AppSettings]:
        stmt = select(AppSettings).order_by(AppSettings.id).limit(1)
        with self._guard("get_settings"):
            return self.db.execute(stmt).scalar_one_or_none()

    def upsert_settings(self, **fields: Any) -> AppSettings:
        values = _pick(fields, SETTINGS_FIELDS)
        with self._guard("upsert_settings"):
            record = self.get_settings()
            if record is None:
                record = AppSettings(**values)
                self.db.add(record)
            else:
                for name, value in values.items():
                    setattr(record, name, value)
            self.db.commit()
            self.db.refresh(record)
            return record


def _pick(fields: dict[str, Any], allowed: set[str]) -> dict[str, Any]:
    unknown = set(fields) - allowed
    if unknown:
        raise TypeError(f"Unsupported fields: {', '.join(sorted(unknown))}")
    return dict(fields)
