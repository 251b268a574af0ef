from datetime import timedelta

import pytest

from licensa.core.errors import DuplicateKeyError, NotFound, ValidationError
from licensa.services.license_service import EVENT_GENERATED, LicenseService
from licensa.services.security import generate_license_key
from licensa.services.verification_service import MSG_ACTIVE, MSG_REVOKED, VerificationService


@pytest.fixture
def events():
    return []


@pytest.fixture
def service(repository, events):
    return LicenseService(repository, on_event=events.append)


class TestIssue:
    def test_lifetime_license_by_default(self, service):
        record = service.issue("Acme Corp")

        assert record.client_name == "Acme Corp"
        assert record.is_active is True
        assert record.expires_at is None
        assert record.key

    def test_expires_in_days_sets_expiry_from_creation(self, service):
        record = service.issue("Acme", expires_in_days=30)

        expected = record.created_at + timedelta(days=30)
        assert abs((record.expires_at - expected).total_seconds()) <= 1

    def test_zero_days_means_lifetime(self, service):
        assert service.issue("Acme", expires_in_days=0).expires_at is None

    def test_negative_days_rejected(self, service):
        with pytest.raises(ValidationError) as info:
            service.issue("Acme", expires_in_days=-5)
        assert info.value.field == "expiresInDays"

    def test_expiry_beyond_calendar_range_rejected(self, service, repository):
        with pytest.raises(ValidationError) as info:
            service.issue("Acme", expires_in_days=3_000_000)
        assert info.value.field == "expiresInDays"
        assert repository.list_licenses() == []

    @pytest.mark.parametrize("name", ["", "   "])
    def test_client_name_required(self, service, name):
        with pytest.raises(ValidationError) as info:
            service.issue(name)
        assert info.value.field == "clientName"

    def test_optional_metadata_is_stored(self, service):
        record = service.issue(
            "Acme", description="Enterprise", email="ops@acme.test", discord_id="1234"
        )

        assert record.description == "Enterprise"
        assert record.email == "ops@acme.test"
        assert record.discord_id == "1234"

    def test_keys_differ_between_issues(self, service):
        assert service.issue("A").key != service.issue("B").key

    def test_generated_event_is_emitted_after_persisting(self, service, events, repository):
        record = service.issue("Acme", email="ops@acme.test")

        assert len(events) == 1
        event = events[0]
        assert event.event_type == EVENT_GENERATED
        assert event.key == record.key
        assert event.client_name == "Acme"
        assert event.email == "ops@acme.test"
        assert repository.get_by_key(record.key) is not None

    def test_event_sink_failure_does_not_fail_issuance(self, repository):
        def exploding_sink(event):
            raise RuntimeError("queue down")

        service = LicenseService(repository, on_event=exploding_sink)

        record = service.issue("Acme")

        assert repository.get_by_id(record.id) is not None

    def test_key_collision_is_retried_once(self, repository):
        repository.create(key="taken", client_name="Existing")
        keys = iter(["taken", "fresh"])
        service = LicenseService(repository, key_factory=lambda: next(keys))

        record = service.issue("Acme")

        assert record.key == "fresh"

    def test_key_collision_surfaces_after_retries(self, repository):
        repository.create(key="taken", client_name="Existing")
        service = LicenseService(repository, key_retries=1, key_factory=lambda: "taken")

        with pytest.raises(DuplicateKeyError):
            service.issue("Acme")
        assert len(repository.list_licenses()) == 1


def test_generated_keys_are_unique():
    keys = {generate_license_key() for _ in range(10_000)}
    assert len(keys) == 10_000


class TestLifecycle:
    def test_set_active_flips_flag_only(self, service):
        record = service.issue("Acme", expires_in_days=5)
        expires_at = record.expires_at

        revoked = service.set_active(record.id, False)

        assert revoked.is_active is False
        assert revoked.expires_at == expires_at
        assert service.set_active(record.id, True).is_active is True

    def test_set_active_missing_license(self, service):
        with pytest.raises(NotFound):
            service.set_active(404, False)

    def test_revoke_then_verify_reports_revocation(self, service, repository):
        record = service.issue("Acme", expires_in_days=365)
        service.set_active(record.id, False)

        result = VerificationService(repository).verify(record.key)

        assert result.valid is False
        assert "revoked" in result.message

    def test_update_fields(self, service):
        record = service.issue("Acme")

        updated = service.update_fields(record.id, client_name="Acme Ltd", description="renamed")

        assert updated.client_name == "Acme Ltd"
        assert updated.description == "renamed"
        assert updated.key == record.key

    def test_update_fields_can_set_and_clear_expiry(self, service, repository):
        record = service.issue("Acme")
        past = record.created_at - timedelta(days=1)

        service.update_fields(record.id, expires_at=past)
        assert VerificationService(repository).verify(record.key).valid is False

        service.update_fields(record.id, expires_at=None)
        assert VerificationService(repository).verify(record.key).message == MSG_ACTIVE

    @pytest.mark.parametrize("field, wire", [("key", "key"), ("id", "id"), ("created_at", "createdAt")])
    def test_update_fields_refuses_immutable_fields(self, service, field, wire):
        record = service.issue("Acme")
        with pytest.raises(ValidationError) as info:
            service.update_fields(record.id, **{field: "x"})
        assert info.value.field == wire

    def test_update_fields_refuses_blank_client_name(self, service):
        record = service.issue("Acme")
        with pytest.raises(ValidationError):
            service.update_fields(record.id, client_name=" ")

    def test_update_fields_missing_license(self, service):
        with pytest.raises(NotFound):
            service.update_fields(404, description="nothing")

    def test_remove(self, service, repository):
        record = service.issue("Acme")

        service.remove(record.id)

        assert repository.get_by_id(record.id) is None

    def test_remove_missing_license(self, service):
        with pytest.raises(NotFound):
            service.remove(404)

    def test_remove_twice_reports_not_found(self, service):
        record = service.issue("Acme")
        service.remove(record.id)
        with pytest.raises(NotFound):
            service.remove(record.id)

    def test_get_license(self, service):
        record = service.issue("Acme")
        assert service.get_license(record.id).key == record.key
        with pytest.raises(NotFound):
            service.get_license(404)


def test_revoked_message_constant_mentions_revocation():
    assert "revoked" in MSG_REVOKED


def test_seed_example_licenses_only_when_empty(repository):
    service = LicenseService(repository)

    assert service.seed_example_licenses() == 2
    assert service.seed_example_licenses() == 0

    names = sorted(r.client_name for r in repository.list_licenses())
    assert names == ["Acme Corp (Lifetime)", "Beta Testers (30 Days)"]
