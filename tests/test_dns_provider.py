"""Tests for the DNS provider interface, the manual provider and the factory."""

from unittest.mock import MagicMock

import pytest

from archon.cloudflare_client import CloudflareProvider
from archon.config import Settings
from archon.dns_provider import (
    DnsProvider,
    ManualDNSError,
    ManualProvider,
    MissingRecordIDError,
    ProviderConfigError,
    create_provider,
    validate_provider_config,
)
from archon.models import DnsProviderConfig, DnsProviderType, DnsRecord, DnsRecordType, Domain
from archon.route53_client import Route53Provider


class RecordingProvider(DnsProvider):
    """Provider double that records every backend call."""

    def __init__(self):
        self.backend = MagicMock()

    def _list_records(self, domain):
        return self.backend.list(domain)

    def _create_record(self, domain, record, tags):
        return self.backend.create(domain, record, tags)

    def _update_record(self, domain, record, tags):
        return self.backend.update(domain, record, tags)

    def _delete_record(self, domain, record_id):
        return self.backend.delete(domain, record_id)


def _record(record_id=None):
    return DnsRecord(
        record_type=DnsRecordType.A, name="www", value="1.2.3.4", id=record_id
    )


class TestRecordIdChecks:
    @pytest.mark.parametrize("record_id", [None, ""])
    def test_update_without_id_makes_no_call(self, record_id):
        provider = RecordingProvider()
        with pytest.raises(MissingRecordIDError):
            provider.update_record("example.com", _record(record_id))
        assert provider.backend.mock_calls == []

    @pytest.mark.parametrize("record_id", [None, ""])
    def test_delete_without_id_makes_no_call(self, record_id):
        provider = RecordingProvider()
        with pytest.raises(MissingRecordIDError):
            provider.delete_record("example.com", record_id)
        assert provider.backend.mock_calls == []

    def test_update_with_id_reaches_backend(self):
        provider = RecordingProvider()
        provider.update_record("example.com", _record("r1"), tags=("site",))
        provider.backend.update.assert_called_once_with("example.com", _record("r1"), ["site"])

    def test_create_passes_empty_tags(self):
        provider = RecordingProvider()
        provider.create_record("example.com", _record())
        provider.backend.create.assert_called_once_with("example.com", _record(), [])

    def test_manual_provider_checks_id_first(self):
        provider = ManualProvider()
        with pytest.raises(MissingRecordIDError):
            provider.delete_record("example.com", "")


class TestManualProvider:
    def test_list_returns_local_copy(self):
        records = [_record("r1")]
        provider = ManualProvider(records)

        listed = provider.list_records("example.com")

        assert listed == records
        assert listed is not records

    @pytest.mark.parametrize("record", [_record(), _record("r1")])
    def test_create_always_refuses(self, record):
        with pytest.raises(ManualDNSError, match="manual DNS"):
            ManualProvider().create_record("example.com", record)

    def test_update_and_delete_refuse(self):
        provider = ManualProvider()
        with pytest.raises(ManualDNSError):
            provider.update_record("example.com", _record("r1"))
        with pytest.raises(ManualDNSError):
            provider.delete_record("example.com", "r1")


class TestCreateProvider:
    def test_manual(self, manual_domain):
        manual_domain.dns_records.append(_record("r1"))
        provider = create_provider(manual_domain)
        assert isinstance(provider, ManualProvider)
        assert provider.list_records(manual_domain.name) == [_record("r1")]

    def test_cloudflare(self, cloudflare_domain):
        provider = create_provider(cloudflare_domain, Settings(default_dns_ttl=120))
        assert isinstance(provider, CloudflareProvider)
        assert provider.zone_id == "zone-1"
        assert provider.default_ttl == 120

    def test_cloudflare_token_from_settings(self):
        domain = Domain.create(
            "example.com",
            DnsProviderConfig(type=DnsProviderType.CLOUDFLARE, zone_id="zone-1"),
        )
        provider = create_provider(domain, Settings(cloudflare_api_token="global"))
        assert isinstance(provider, CloudflareProvider)

    def test_cloudflare_without_zone_rejected(self):
        domain = Domain.create(
            "example.com",
            DnsProviderConfig(type=DnsProviderType.CLOUDFLARE, api_token="t"),
        )
        with pytest.raises(ProviderConfigError, match="zone_id"):
            create_provider(domain)

    def test_route53(self):
        domain = Domain.create(
            "example.com",
            DnsProviderConfig(
                type=DnsProviderType.ROUTE53,
                access_key="AKIA",
                secret_key="secret",
                hosted_zone_id="Z123",
            ),
        )
        provider = create_provider(domain)
        assert isinstance(provider, Route53Provider)
        assert provider.hosted_zone_id == "Z123"

    def test_route53_missing_keys(self):
        config = DnsProviderConfig(type=DnsProviderType.ROUTE53, hosted_zone_id="Z123")
        with pytest.raises(ProviderConfigError, match="access_key, secret_key"):
            validate_provider_config(config)

    def test_manual_needs_nothing(self):
        validate_provider_config(DnsProviderConfig())
