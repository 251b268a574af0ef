from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import requests

from licensa.schemas.license import VerifyLicenseResponse


@dataclass
class LicenseValidation:
    valid: bool
    message: str
    client_name: Optional[str] = None
    expires_at: Optional[datetime] = None


class LicenseApiClient:
    """Talks to the public verification endpoint from a client deployment."""

    VERIFY_PATH = "/api/verify-license"

    def __init__(self, base_url: str, timeout: int = 12, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def verify(self, key: str) -> LicenseValidation:
        response = self.session.post(
            f"{self.base_url}{self.VERIFY_PATH}",
            json={"key": key},
            timeout=self.timeout,
        )
        # A rejected request still carries a verification-shaped body.
        if response.status_code != 400:
            response.raise_for_status()
        data = VerifyLicenseResponse.model_validate(response.json())
        return LicenseValidation(
            valid=data.valid,
            message=data.message,
            client_name=data.license.client_name if data.license else None,
            expires_at=data.license.expires_at if data.license else None,
        )
