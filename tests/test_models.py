"""Model and error formatting tests."""

import json
from datetime import datetime, timezone

from certkeeper.errors import PolicyError, ProtocolError, ValidationError
from certkeeper.models import CertificateResource, CertificateStatus


def test_resource_normalizes_domains():
    resource = CertificateResource(domain="example.com", domains=[" Example.COM", "", "WWW.example.com "])
    assert resource.domains == ["example.com", "www.example.com"]


def test_resource_json_omits_private_key():
    resource = CertificateResource(domain="example.com", certificate=b"CERT", private_key=b"KEY")

    data = json.loads(resource.model_dump_json())

    assert data["certificate"] == "CERT"
    assert "private_key" not in data
    assert CertificateResource.model_validate_json(resource.model_dump_json()).private_key == b""


def test_status_serializes_expiry():
    expires_at = datetime(2026, 3, 1, tzinfo=timezone.utc)
    status = CertificateStatus(certs_dir="/certs", available=True, expires_at=expires_at, days_remaining=59)
    assert status.model_dump(mode="json")["expires_at"] == "2026-03-01T00:00:00+00:00"


def test_failures_message_lists_every_domain_in_order():
    error = ProtocolError.from_failures({
        "a.example.com": ValueError("timeout"),
        "b.example.com": ValueError("unauthorized"),
    })

    assert error.message == (
        "Failed to obtain certificates for domains: a.example.com, b.example.com, "
        "with following errors respectively: a.example.com: timeout; b.example.com: unauthorized"
    )
    assert error.details["domains"] == ["a.example.com", "b.example.com"]


def test_policy_error_message():
    error = PolicyError(60, 45)
    assert error.message == "Keys have not expired yet, please renew in 60 days."
    assert str(error) == "[RENEWAL_NOT_DUE] Keys have not expired yet, please renew in 60 days."


def test_validation_error_carries_domain():
    error = ValidationError("bad!.com")
    assert error.domain == "bad!.com"
    assert error.error_code == "INVALID_DOMAIN"
