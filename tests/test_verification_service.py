from datetime import timedelta

import pytest

from licensa.core.errors import StorageError, ValidationError
from licensa.models.license import is_license_valid, utcnow
from licensa.services.verification_service import (
    MSG_ACTIVE,
    MSG_EXPIRED,
    MSG_INVALID_KEY,
    MSG_REVOKED,
    VerificationService,
)


class TestVerificationService:
    def test_unknown_key_is_a_negative_result(self, repository):
        result = VerificationService(repository).verify("no-such-key")

        assert result.valid is False
        assert result.message == MSG_INVALID_KEY
        assert result.client_name is None

    @pytest.mark.parametrize("key", ["", "   "])
    def test_blank_key_is_rejected(self, repository, key):
        with pytest.raises(ValidationError) as info:
            VerificationService(repository).verify(key)
        assert info.value.field == "key"

    def test_revoked_license(self, repository):
        repository.create(key="revoked", client_name="Acme", is_active=False)

        result = VerificationService(repository).verify("revoked")

        assert result.valid is False
        assert result.message == MSG_REVOKED

    def test_expired_license(self, repository):
        repository.create(key="old", client_name="Acme", expires_at=utcnow() - timedelta(days=1))

        result = VerificationService(repository).verify("old")

        assert result.valid is False
        assert result.message == MSG_EXPIRED

    def test_revocation_takes_precedence_over_expiry(self, repository):
        repository.create(
            key="both", client_name="Acme", is_active=False, expires_at=utcnow() - timedelta(days=1)
        )

        result = VerificationService(repository).verify("both")

        assert result.message == MSG_REVOKED

    def test_active_license_reports_details_and_marks_checked(self, repository):
        expires_at = utcnow() + timedelta(days=10)
        record = repository.create(key="good", client_name="Acme", expires_at=expires_at)
        assert record.last_checked_at is None

        result = VerificationService(repository).verify("good")

        assert result.valid is True
        assert result.message == MSG_ACTIVE
        assert result.client_name == "Acme"
        assert result.expires_at == expires_at
        assert repository.get_by_id(record.id).last_checked_at is not None

    def test_failed_verification_does_not_touch_last_checked(self, repository):
        record = repository.create(key="revoked", client_name="Acme", is_active=False)

        VerificationService(repository).verify("revoked")

        assert repository.get_by_id(record.id).last_checked_at is None

    def test_mark_checked_failure_keeps_positive_result(self, repository, monkeypatch):
        repository.create(key="good", client_name="Acme")

        def broken(*args, **kwargs):
            raise StorageError("disk full")

        monkeypatch.setattr(repository, "mark_checked", broken)

        result = VerificationService(repository).verify("good")

        assert result.valid is True
        assert result.message == MSG_ACTIVE

    def test_validity_matches_model_invariant(self, repository):
        now = utcnow()
        cases = [
            ("a", True, None),
            ("b", True, now + timedelta(hours=1)),
            ("c", True, now - timedelta(hours=1)),
            ("d", False, None),
            ("e", False, now + timedelta(hours=1)),
            ("f", False, now - timedelta(hours=1)),
        ]
        service = VerificationService(repository)
        for key, is_active, expires_at in cases:
            record = repository.create(key=key, client_name=key, is_active=is_active, expires_at=expires_at)
            expected = is_license_valid(record, now)
            assert service.verify(key, now=now).valid is expected
