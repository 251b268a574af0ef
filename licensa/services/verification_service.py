import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from licensa.core.errors import StorageError, ValidationError
from licensa.models.license import is_license_expired, utcnow
from licensa.repositories.license_repository import LicenseRepository

logger = logging.getLogger(__name__)

MSG_INVALID_KEY = "Invalid license key"
MSG_REVOKED = "License has been revoked"
MSG_EXPIRED = "License has expired"
MSG_ACTIVE = "License is active"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    message: str
    client_name: Optional[str] = None
    expires_at: Optional[datetime] = None


class VerificationService:
    def __init__(self, repository: LicenseRepository):
        self.repository = repository

    def verify(self, key: str, now: Optional[datetime] = None) -> VerificationResult:
        """
        Decide whether ``key`` grants access right now.

        Checks run in a fixed order and the first hit wins: unknown key,
        revoked, expired, then valid. A revoked license that has also lapsed
        therefore reports revocation. Only a blank key raises.
        """
        if not key or not key.strip():
            raise ValidationError("License key is required", field="key")

        current = now or utcnow()
        record = self.repository.get_by_key(key)
        if record is None:
            return VerificationResult(valid=False, message=MSG_INVALID_KEY)

        if not record.is_active:
            return VerificationResult(valid=False, message=MSG_REVOKED)

        if is_license_expired(record, current):
            return VerificationResult(valid=False, message=MSG_EXPIRED)

        result = VerificationResult(
            valid=True,
            message=MSG_ACTIVE,
            client_name=record.client_name,
            expires_at=record.expires_at,
        )
        try:
            self.repository.mark_checked(record.id, current)
        except StorageError:
            logger.warning("Could not record check time for license %s", record.id, exc_info=True)
        return result
