import logging
from datetime import timedelta
from typing import Any, Callable, Optional

from licensa.core.errors import DuplicateKeyError, NotFound, ValidationError
from licensa.models.license import License, utcnow
from licensa.repositories.license_repository import LicenseRepository
from licensa.services.notification_service import LicenseEvent
from licensa.services.security import generate_license_key

logger = logging.getLogger(__name__)

EVENT_GENERATED = "Generated"

EDITABLE_FIELDS = {"client_name", "email", "discord_id", "description", "is_active", "expires_at"}
IMMUTABLE_FIELDS = {"id", "key", "created_at", "last_checked_at"}

# Receives a LicenseEvent after the license is committed. The API passes
# BackgroundTasks.add_task bound to the notifier registry; tests pass a list's append.
EventSink = Callable[[LicenseEvent], Any]


def _wire_name(field: str) -> str:
    head, *rest = field.split("_")
    return head + "".join(part.title() for part in rest)


class LicenseService:
    def __init__(
        self,
        repository: LicenseRepository,
        on_event: Optional[EventSink] = None,
        key_retries: int = 1,
        key_factory: Callable[[], str] = generate_license_key,
    ):
        self.repository = repository
        self.on_event = on_event
        self.key_retries = key_retries
        self.key_factory = key_factory

    def _resolve_expiration(self, expires_in_days: Optional[int]):
        if expires_in_days is None:
            return None
        if expires_in_days < 0:
            raise ValidationError("Expiration days must not be negative", field="expiresInDays")
        if expires_in_days == 0:
            return None
        try:
            return utcnow() + timedelta(days=expires_in_days)
        except OverflowError as exc:
            raise ValidationError("Expiration days out of range", field="expiresInDays") from exc

    def _emit(self, record: License, event_type: str) -> None:
        if self.on_event is None:
            return
        event = LicenseEvent.from_license(record, event_type)
        try:
            self.on_event(event)
        except Exception:
            logger.warning("Could not hand off %s event for license %s", event_type, record.id, exc_info=True)

    def issue(
        self,
        client_name: str,
        description: Optional[str] = None,
        email: Optional[str] = None,
        discord_id: Optional[str] = None,
        expires_in_days: Optional[int] = None,
    ) -> License:
        if not client_name or not client_name.strip():
            raise ValidationError("Client name is required", field="clientName")
        expires_at = self._resolve_expiration(expires_in_days)

        attempts = self.key_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                record = self.repository.create(
                    key=self.key_factory(),
                    client_name=client_name.strip(),
                    description=description or None,
                    email=email or None,
                    discord_id=discord_id or None,
                    is_active=True,
                    expires_at=expires_at,
                )
                break
            except DuplicateKeyError:
                if attempt == attempts:
                    raise
                logger.warning("License key collision, regenerating (attempt %s/%s)", attempt, attempts)

        logger.info(
            "License issued",
            extra={"license_id": record.id, "lifetime": record.expires_at is None},
        )
        self._emit(record, EVENT_GENERATED)
        return record

    def list_licenses(self) -> list[License]:
        return self.repository.list_licenses()

    def get_license(self, license_id: int) -> License:
        record = self.repository.get_by_id(license_id)
        if record is None:
            raise NotFound()
        return record

    def set_active(self, license_id: int, active: bool) -> License:
        record = self.repository.update(license_id, is_active=active)
        logger.info("License %s", "reactivated" if active else "revoked", extra={"license_id": license_id})
        return record

    def update_fields(self, license_id: int, **fields: Any) -> License:
        locked = IMMUTABLE_FIELDS & set(fields)
        if locked:
            name = sorted(locked)[0]
            raise ValidationError(f"{_wire_name(name)} cannot be changed", field=_wire_name(name))
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            name = sorted(unknown)[0]
            raise ValidationError(f"Unknown field {name}", field=_wire_name(name))
        if "client_name" in fields:
            client_name = fields["client_name"]
            if not client_name or not str(client_name).strip():
                raise ValidationError("Client name is required", field="clientName")
            fields["client_name"] = client_name.strip()
        if "is_active" in fields and fields["is_active"] is None:
            raise ValidationError("isActive cannot be null", field="isActive")

        return self.repository.update(license_id, **fields)

    def remove(self, license_id: int) -> None:
        if self.repository.get_by_id(license_id) is None:
            raise NotFound()
        self.repository.delete(license_id)
        logger.info("License deleted", extra={"license_id": license_id})

    def seed_example_licenses(self) -> int:
        if self.repository.list_licenses():
            return 0
        self.repository.create(
            key=self.key_factory(),
            client_name="Acme Corp (Lifetime)",
            description="Lifetime enterprise license",
            is_active=True,
            expires_at=None,
        )
        self.repository.create(
            key=self.key_factory(),
            client_name="Beta Testers (30 Days)",
            description="Trial license",
            is_active=True,
            expires_at=utcnow() + timedelta(days=30),
        )
        logger.info("Seeded example licenses")
        return 2
