"""Tests for the site, domain and node models."""

import ipaddress
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from archon.models import (
    NIL_UUID,
    DnsProviderConfig,
    DnsProviderType,
    DnsRecord,
    DnsRecordType,
    Domain,
    DomainMapping,
    Node,
    NodeStatus,
    DockerInfo,
    Site,
    SiteStatus,
    get_full_domain,
)
from archon.ports import PortOutOfRangeError


def _backdate(site):
    site.updated_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
    return site.updated_at


class TestGetDomainMappings:
    def test_current_mappings_win(self, legacy_site):
        mapping = DomainMapping(domain_id=uuid.uuid4(), container_port=3000)
        legacy_site.domain_mappings = [mapping]

        result = legacy_site.get_domain_mappings()

        assert result is legacy_site.domain_mappings
        assert result == [mapping]

    def test_legacy_fallback(self, legacy_site):
        result = legacy_site.get_domain_mappings()

        assert len(result) == 1
        assert result[0].domain_id == legacy_site.domain_id
        assert result[0].subdomain == ""
        assert result[0].container_port == 8080
        assert result[0].host_port == 8080

    def test_legacy_fallback_does_not_write_back(self, legacy_site):
        legacy_site.get_domain_mappings()
        legacy_site.get_domain_mappings()
        assert legacy_site.domain_mappings == []

    def test_legacy_port_zero_gives_nothing(self, legacy_site):
        legacy_site.port = 0
        assert legacy_site.get_domain_mappings() == []

    def test_nil_legacy_domain_gives_nothing(self, legacy_site):
        legacy_site.domain_id = NIL_UUID
        assert legacy_site.get_domain_mappings() == []

    def test_missing_legacy_domain_gives_nothing(self, legacy_site):
        legacy_site.domain_id = None
        assert legacy_site.get_domain_mappings() == []


class TestSiteCreate:
    def test_seeds_mapping_and_legacy_fields(self):
        domain_id, node_id = uuid.uuid4(), uuid.uuid4()
        site = Site.create("app", domain_id, node_id, "app:1", 3000)

        assert site.domain_id == domain_id
        assert site.port == 3000
        assert site.ssl_enabled is True
        assert site.status == SiteStatus.INACTIVE
        assert site.domain_mappings == [
            DomainMapping(domain_id=domain_id, container_port=3000, host_port=3000)
        ]


class TestAddRemoveMapping:
    def test_add_defaults_host_port(self, site):
        before = _backdate(site)
        domain_id = uuid.uuid4()

        site.add_domain_mapping(domain_id, 9000, subdomain="api")

        added = site.domain_mappings[-1]
        assert added.domain_id == domain_id
        assert added.subdomain == "api"
        assert added.container_port == 9000
        assert added.host_port == 9000
        assert site.updated_at > before

    def test_add_with_explicit_host_port(self, site):
        mapping = site.add_domain_mapping(uuid.uuid4(), 80, host_port=8081)
        assert mapping.effective_host_port == 8081

    def test_add_rejects_bad_port(self, site):
        with pytest.raises(PortOutOfRangeError):
            site.add_domain_mapping(uuid.uuid4(), 70000)

    def test_remove_preserves_order(self, site):
        second = site.add_domain_mapping(uuid.uuid4(), 81)
        third = site.add_domain_mapping(uuid.uuid4(), 82)
        before = _backdate(site)

        site.remove_domain_mapping(0)

        assert site.domain_mappings == [second, third]
        assert site.updated_at > before

    @pytest.mark.parametrize("index", [-1, 1, 5])
    def test_remove_out_of_range_is_noop(self, site, index):
        snapshot = list(site.domain_mappings)
        before = _backdate(site)

        site.remove_domain_mapping(index)

        assert site.domain_mappings == snapshot
        assert site.updated_at == before


class TestDomainMapping:
    def test_effective_host_port_defaults_to_container(self):
        mapping = DomainMapping(domain_id=uuid.uuid4(), container_port=80, host_port=0)
        assert mapping.effective_host_port == 80

    def test_effective_host_port_uses_host(self):
        mapping = DomainMapping(domain_id=uuid.uuid4(), container_port=80, host_port=8080)
        assert mapping.effective_host_port == 8080

    def test_container_port_validated(self):
        with pytest.raises(PortOutOfRangeError):
            DomainMapping(domain_id=uuid.uuid4(), container_port=0)

    def test_host_port_validated(self):
        with pytest.raises(PortOutOfRangeError):
            DomainMapping(domain_id=uuid.uuid4(), container_port=80, host_port=70000)

    def test_to_dict_omits_empty_fields(self):
        domain_id = uuid.uuid4()
        data = DomainMapping(domain_id=domain_id, container_port=80).to_dict()
        assert data == {"domain_id": str(domain_id), "port": 80}

    def test_from_dict(self):
        domain_id = uuid.uuid4()
        mapping = DomainMapping.from_dict(
            {"domain_id": str(domain_id), "subdomain": "www", "port": 80, "host_port": 8080}
        )
        assert mapping == DomainMapping(
            domain_id=domain_id, subdomain="www", container_port=80, host_port=8080
        )


class TestGetFullDomain:
    def test_apex(self):
        assert get_full_domain("example.com", "") == "example.com"

    def test_subdomain(self):
        assert get_full_domain("example.com", "www") == "www.example.com"


class TestSitePersistence:
    def test_legacy_document_loads_and_falls_back(self):
        domain_id = uuid.uuid4()
        data = {
            "id": str(uuid.uuid4()),
            "name": "old",
            "domain_id": str(domain_id),
            "node_id": str(uuid.uuid4()),
            "docker_image": "nginx",
            "environment_vars": {},
            "port": 8080,
            "ssl_enabled": False,
            "config_files": [],
            "status": "running",
            "created_at": "2024-05-01T10:00:00Z",
            "updated_at": "2024-05-01T10:00:00Z",
        }

        site = Site.from_dict(data)

        assert site.domain_mappings == []
        assert site.status == SiteStatus.RUNNING
        assert site.created_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
        [mapping] = site.get_domain_mappings()
        assert mapping.domain_id == domain_id
        assert mapping.container_port == 8080

    def test_to_dict_keeps_legacy_keys_and_omits_empty(self):
        site = Site(name="bare", docker_image="nginx")
        data = site.to_dict()

        assert data["domain_id"] == str(NIL_UUID)
        assert data["port"] == 0
        for key in ("domain_mappings", "docker_username", "docker_token", "ssl_email"):
            assert key not in data

    def test_round_trip(self, site):
        site.environment_vars["MODE"] = "prod"
        site.add_domain_mapping(uuid.uuid4(), 80, subdomain="www", host_port=8080)

        restored = Site.from_dict(site.to_dict())

        assert restored == site


class TestTraefikLabels:
    def test_ssl_router_per_hostname(self, site):
        site.add_domain_mapping(uuid.uuid4(), 9000)
        labels = site.generate_traefik_labels(
            [(0, "blog.example.com"), (1, "api.example.com")]
        )

        first = f"site-{site.id}"
        second = f"site-{site.id}-1"
        assert labels["traefik.enable"] == "true"
        assert labels[f"traefik.http.routers.{first}.rule"] == "Host(`blog.example.com`)"
        assert labels[f"traefik.http.routers.{first}.entrypoints"] == "websecure"
        assert labels[f"traefik.http.routers.{first}.tls.certresolver"] == "letsencrypt"
        assert labels[f"traefik.http.services.{first}.loadbalancer.server.port"] == "2368"
        assert labels[f"traefik.http.services.{second}.loadbalancer.server.port"] == "9000"

    def test_plain_http(self, site):
        site.ssl_enabled = False
        labels = site.generate_traefik_labels([(0, "blog.example.com")])
        router = f"site-{site.id}"
        assert labels[f"traefik.http.routers.{router}.entrypoints"] == "web"
        assert f"traefik.http.routers.{router}.tls" not in labels

    def test_no_hostnames_no_labels(self, site):
        assert site.generate_traefik_labels([]) == {}


class TestDomain:
    def test_defaults_to_manual(self):
        domain = Domain.create("example.org")
        assert domain.is_manual_dns
        assert domain.provider_name == "Manual"
        assert domain.traefik_enabled is True
        assert "Manual DNS" in domain.manual_dns_warning

    def test_no_warning_for_api_provider(self, cloudflare_domain):
        assert cloudflare_domain.manual_dns_warning is None
        assert cloudflare_domain.provider_name == "Cloudflare"

    def test_provider_config_omits_empty_credentials(self):
        config = DnsProviderConfig(type=DnsProviderType.ROUTE53, hosted_zone_id="Z1")
        assert config.to_dict() == {"type": "route53", "hosted_zone_id": "Z1"}

    def test_round_trip_with_stale_records(self, cloudflare_domain):
        cloudflare_domain.dns_records.append(
            DnsRecord(record_type=DnsRecordType.A, name="www", value="1.2.3.4", ttl=300, id="r1")
        )
        cloudflare_domain.records_stale = True

        data = cloudflare_domain.to_dict()
        restored = Domain.from_dict(data)

        assert data["records_stale"] is True
        assert restored == cloudflare_domain

    def test_records_stale_omitted_when_false(self, cloudflare_domain):
        assert "records_stale" not in cloudflare_domain.to_dict()


class TestDnsRecord:
    def test_record_type_parse_is_case_insensitive(self):
        assert DnsRecordType.from_str("cname") is DnsRecordType.CNAME

    def test_record_type_rejects_unknown(self):
        with pytest.raises(ValueError):
            DnsRecordType.from_str("NS")

    def test_to_dict_omits_missing_id(self):
        record = DnsRecord(record_type=DnsRecordType.TXT, name="@", value="v=spf1")
        data = record.to_dict()
        assert "id" not in data
        assert data["record_type"] == "TXT"


class TestNode:
    def test_update_health_stamps_time(self, node):
        node.update_health(NodeStatus.ONLINE, DockerInfo("24.0", 3, 7))
        assert node.status == NodeStatus.ONLINE
        assert node.docker_info.containers_running == 3
        assert datetime.now(timezone.utc) - node.last_health_check < timedelta(seconds=5)

    def test_round_trip(self, node):
        node.update_health(NodeStatus.DEGRADED)
        restored = Node.from_dict(node.to_dict())
        assert restored == node
        assert restored.ip_address == ipaddress.ip_address("203.0.113.10")

    def test_unknown_status(self):
        assert NodeStatus.from_str("rebooting") is NodeStatus.UNKNOWN
