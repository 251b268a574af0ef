import uuid

import pytest

from licensa.services.security import generate_license_key, mask_key, verify_admin_password


def test_generated_key_is_a_uuid4():
    key = generate_license_key()
    assert uuid.UUID(key).version == 4


@pytest.mark.parametrize(
    "provided, expected, ok",
    [
        ("s3cret", "s3cret", True),
        ("s3cret", "S3CRET", False),
        ("", "s3cret", False),
        ("s3cret", "", False),
        ("", "", False),
    ],
)
def test_verify_admin_password(provided, expected, ok):
    assert verify_admin_password(provided, expected) is ok


def test_mask_key_keeps_prefix_only():
    assert mask_key("0123456789abcdef") == "01234567..."
    assert mask_key("short") == "***"
