"""Data models for Archon.

Every model round-trips through ``to_dict()`` / ``from_dict()`` using the
field names of the persisted config document.  Optional fields are left
out of the dict when empty so older readers see the same shape they wrote.
"""

from __future__ import annotations

import ipaddress
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from archon.ports import check_port

NIL_UUID = uuid.UUID(int=0)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _parse_uuid(value: Any) -> Optional[uuid.UUID]:
    """Parse a UUID, treating empty and nil values as unset."""
    if value is None or value == "":
        return None
    parsed = value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    if parsed == NIL_UUID:
        return None
    return parsed


def get_full_domain(domain_name: str, subdomain: str = "") -> str:
    """Join *subdomain* onto *domain_name*; an empty subdomain is the apex."""
    if not subdomain:
        return domain_name
    return f"{subdomain}.{domain_name}"


# ---------------------------------------------------------------------------
# Sites
# ---------------------------------------------------------------------------

class SiteStatus(Enum):
    INACTIVE = "inactive"
    DEPLOYING = "deploying"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"

    @classmethod
    def from_str(cls, s: str) -> "SiteStatus":
        try:
            return cls(str(s).lower())
        except ValueError:
            return cls.INACTIVE


@dataclass
class DomainMapping:
    """One hostname binding for a site: ``subdomain.domain -> port``."""
    domain_id: uuid.UUID
    container_port: int
    subdomain: str = ""     # "" = root domain
    host_port: int = 0      # 0 = same as container_port

    def __post_init__(self):
        check_port(self.container_port, "container")
        if self.host_port:
            check_port(self.host_port, "host")

    @property
    def effective_host_port(self) -> int:
        if self.host_port > 0:
            return self.host_port
        return self.container_port

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"domain_id": str(self.domain_id)}
        if self.subdomain:
            data["subdomain"] = self.subdomain
        data["port"] = self.container_port
        if self.host_port:
            data["host_port"] = self.host_port
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DomainMapping":
        return cls(
            domain_id=uuid.UUID(str(data["domain_id"])),
            subdomain=str(data.get("subdomain", "") or ""),
            container_port=int(data.get("port", 0)),
            host_port=int(data.get("host_port", 0) or 0),
        )


@dataclass
class ConfigFile:
    """A file mounted into the site's container."""
    name: str
    container_path: str
    content: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "content": self.content,
            "container_path": self.container_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConfigFile":
        return cls(
            name=str(data.get("name", "")),
            content=str(data.get("content", "")),
            container_path=str(data.get("container_path", "")),
        )


@dataclass
class Site:
    """A deployable containerized service.

    ``domain_id`` and ``port`` are the pre-multi-domain representation and
    are kept so older config files keep loading.  New code reads hostnames
    through :meth:`get_domain_mappings` only.
    """
    name: str
    node_id: Optional[uuid.UUID] = None
    docker_image: str = ""
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    domain_id: Optional[uuid.UUID] = None   # legacy
    port: int = 0                           # legacy
    domain_mappings: list[DomainMapping] = field(default_factory=list)
    docker_username: str = ""
    docker_token: str = ""
    environment_vars: dict[str, str] = field(default_factory=dict)
    ssl_enabled: bool = True
    ssl_email: str = ""
    config_files: list[ConfigFile] = field(default_factory=list)
    status: SiteStatus = SiteStatus.INACTIVE
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @classmethod
    def create(
        cls,
        name: str,
        domain_id: uuid.UUID,
        node_id: uuid.UUID,
        docker_image: str,
        port: int,
    ) -> "Site":
        """Create a site seeded with one mapping for *domain_id*:*port*.

        The legacy fields are populated too so the record stays readable by
        clients that predate domain mappings.
        """
        site = cls(
            name=name,
            node_id=node_id,
            docker_image=docker_image,
            domain_id=domain_id,
            port=port,
        )
        site.domain_mappings = [
            DomainMapping(domain_id=domain_id, container_port=port, host_port=port)
        ]
        return site

    # -- domain mappings ----------------------------------------------------

    def get_domain_mappings(self) -> list[DomainMapping]:
        """Return the site's domain mappings.

        The stored list wins whenever it is non-empty.  Otherwise a single
        mapping is synthesized from the legacy ``domain_id``/``port`` pair,
        without writing it back.
        """
        if self.domain_mappings:
            return self.domain_mappings

        if self.domain_id is not None and self.domain_id != NIL_UUID and self.port > 0:
            return [
                DomainMapping(
                    domain_id=self.domain_id,
                    container_port=self.port,
                    host_port=self.port,
                )
            ]

        return []

    def add_domain_mapping(
        self,
        domain_id: uuid.UUID,
        port: int,
        subdomain: str = "",
        host_port: int = 0,
    ) -> DomainMapping:
        mapping = DomainMapping(
            domain_id=domain_id,
            subdomain=subdomain,
            container_port=port,
            host_port=host_port or port,
        )
        self.domain_mappings.append(mapping)
        self.updated_at = _now()
        return mapping

    def remove_domain_mapping(self, index: int) -> None:
        """Remove the mapping at *index*; out-of-range indexes are ignored."""
        if 0 <= index < len(self.domain_mappings):
            del self.domain_mappings[index]
            self.updated_at = _now()

    # -- reverse proxy ------------------------------------------------------

    def router_name(self, index: int = 0) -> str:
        if index == 0:
            return f"site-{self.id}"
        return f"site-{self.id}-{index}"

    def generate_traefik_labels(
        self, hostnames: list[tuple[int, str]]
    ) -> dict[str, str]:
        """Docker labels routing each hostname to this site through Traefik.

        *hostnames* holds ``(mapping_index, hostname)`` pairs; the index picks
        the mapping whose container port backs the router.
        """
        labels: dict[str, str] = {}
        if not hostnames:
            return labels

        mappings = self.get_domain_mappings()
        labels["traefik.enable"] = "true"
        entrypoint = "websecure" if self.ssl_enabled else "web"

        for index, hostname in hostnames:
            router = self.router_name(index)
            prefix = f"traefik.http.routers.{router}"
            labels[f"{prefix}.rule"] = f"Host(`{hostname}`)"
            labels[f"{prefix}.entrypoints"] = entrypoint
            labels[f"{prefix}.service"] = router
            if self.ssl_enabled:
                labels[f"{prefix}.tls"] = "true"
                labels[f"{prefix}.tls.certresolver"] = "letsencrypt"
            labels[f"traefik.http.services.{router}.loadbalancer.server.port"] = str(
                mappings[index].container_port
            )

        return labels

    # -- persistence --------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": str(self.id),
            "name": self.name,
            "domain_id": str(self.domain_id or NIL_UUID),
            "node_id": str(self.node_id or NIL_UUID),
            "docker_image": self.docker_image,
        }
        if self.docker_username:
            data["docker_username"] = self.docker_username
        if self.docker_token:
            data["docker_token"] = self.docker_token
        data["environment_vars"] = dict(self.environment_vars)
        data["port"] = self.port
        if self.domain_mappings:
            data["domain_mappings"] = [m.to_dict() for m in self.domain_mappings]
        data["ssl_enabled"] = self.ssl_enabled
        if self.ssl_email:
            data["ssl_email"] = self.ssl_email
        data["config_files"] = [c.to_dict() for c in self.config_files]
        data["status"] = self.status.value
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Site":
        site = cls(
            id=_parse_uuid(data.get("id")) or uuid.uuid4(),
            name=str(data.get("name", "")),
            domain_id=_parse_uuid(data.get("domain_id")),
            node_id=_parse_uuid(data.get("node_id")),
            docker_image=str(data.get("docker_image", "")),
            docker_username=str(data.get("docker_username", "") or ""),
            docker_token=str(data.get("docker_token", "") or ""),
            environment_vars={
                str(k): str(v)
                for k, v in (data.get("environment_vars") or {}).items()
            },
            port=int(data.get("port", 0) or 0),
            domain_mappings=[
                DomainMapping.from_dict(m) for m in data.get("domain_mappings") or []
            ],
            ssl_enabled=bool(data.get("ssl_enabled", True)),
            ssl_email=str(data.get("ssl_email", "") or ""),
            config_files=[
                ConfigFile.from_dict(c) for c in data.get("config_files") or []
            ],
            status=SiteStatus.from_str(data.get("status", "inactive")),
        )
        created = _parse_time(data.get("created_at"))
        updated = _parse_time(data.get("updated_at"))
        if created:
            site.created_at = created
        if updated:
            site.updated_at = updated
        return site


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------

class DnsRecordType(Enum):
    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    SRV = "SRV"

    @classmethod
    def from_str(cls, s: str) -> "DnsRecordType":
        try:
            return cls(str(s).upper())
        except ValueError:
            raise ValueError(f"Invalid DNS record type: {s}") from None

    def __str__(self) -> str:
        return self.value


@dataclass
class DnsRecord:
    """A provider-agnostic DNS record.

    ``id`` is ``None`` until a provider confirms the record exists.
    ``ttl`` of 0 lets the provider apply its own default.
    """
    record_type: DnsRecordType
    name: str
    value: str
    ttl: int = 0
    proxied: bool = False   # Cloudflare only
    id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data.update({
            "record_type": self.record_type.value,
            "name": self.name,
            "value": self.value,
            "ttl": self.ttl,
            "proxied": self.proxied,
        })
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DnsRecord":
        record_id = data.get("id")
        return cls(
            id=str(record_id) if record_id is not None else None,
            record_type=DnsRecordType.from_str(data.get("record_type", "")),
            name=str(data.get("name", "")),
            value=str(data.get("value", "")),
            ttl=int(data.get("ttl", 0) or 0),
            proxied=bool(data.get("proxied", False)),
        )


class DnsProviderType(Enum):
    MANUAL = "manual"
    CLOUDFLARE = "cloudflare"
    ROUTE53 = "route53"


PROVIDER_DISPLAY_NAMES = {
    DnsProviderType.MANUAL: "Manual",
    DnsProviderType.CLOUDFLARE: "Cloudflare",
    DnsProviderType.ROUTE53: "AWS Route53",
}


@dataclass
class DnsProviderConfig:
    type: DnsProviderType = DnsProviderType.MANUAL
    api_token: str = ""         # Cloudflare
    zone_id: str = ""           # Cloudflare
    access_key: str = ""        # Route53
    secret_key: str = ""        # Route53
    hosted_zone_id: str = ""    # Route53

    @property
    def is_manual(self) -> bool:
        return self.type == DnsProviderType.MANUAL

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        for key in ("api_token", "zone_id", "access_key", "secret_key", "hosted_zone_id"):
            value = getattr(self, key)
            if value:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DnsProviderConfig":
        return cls(
            type=DnsProviderType(str(data.get("type", "manual")).lower()),
            api_token=str(data.get("api_token", "") or ""),
            zone_id=str(data.get("zone_id", "") or ""),
            access_key=str(data.get("access_key", "") or ""),
            secret_key=str(data.get("secret_key", "") or ""),
            hosted_zone_id=str(data.get("hosted_zone_id", "") or ""),
        )


MANUAL_DNS_WARNING = (
    "Manual DNS - Configure records manually at your DNS provider"
)


@dataclass
class Domain:
    """A DNS zone, its provider selection and its last-known records."""
    name: str
    dns_provider: DnsProviderConfig = field(default_factory=DnsProviderConfig)
    dns_records: list[DnsRecord] = field(default_factory=list)
    traefik_enabled: bool = True
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=_now)
    # Set when the provider changed and dns_records has not been re-synced.
    records_stale: bool = False

    @classmethod
    def create(
        cls, name: str, provider: Optional[DnsProviderConfig] = None
    ) -> "Domain":
        return cls(name=name, dns_provider=provider or DnsProviderConfig())

    @property
    def is_manual_dns(self) -> bool:
        return self.dns_provider.is_manual

    @property
    def provider_name(self) -> str:
        return PROVIDER_DISPLAY_NAMES.get(self.dns_provider.type, "Unknown")

    @property
    def manual_dns_warning(self) -> Optional[str]:
        if self.is_manual_dns:
            return MANUAL_DNS_WARNING
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": str(self.id),
            "name": self.name,
            "dns_provider": self.dns_provider.to_dict(),
            "dns_records": [r.to_dict() for r in self.dns_records],
            "traefik_enabled": self.traefik_enabled,
            "created_at": self.created_at.isoformat(),
        }
        if self.records_stale:
            data["records_stale"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Domain":
        domain = cls(
            id=_parse_uuid(data.get("id")) or uuid.uuid4(),
            name=str(data.get("name", "")),
            dns_provider=DnsProviderConfig.from_dict(data.get("dns_provider") or {}),
            dns_records=[
                DnsRecord.from_dict(r) for r in data.get("dns_records") or []
            ],
            traefik_enabled=bool(data.get("traefik_enabled", True)),
            records_stale=bool(data.get("records_stale", False)),
        )
        created = _parse_time(data.get("created_at"))
        if created:
            domain.created_at = created
        return domain


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

class NodeStatus(Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"
    DEGRADED = "degraded"

    @classmethod
    def from_str(cls, s: str) -> "NodeStatus":
        try:
            return cls(str(s).lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def icon(self) -> str:
        return {
            NodeStatus.ONLINE: "●",
            NodeStatus.OFFLINE: "○",
            NodeStatus.DEGRADED: "◑",
            NodeStatus.UNKNOWN: "?",
        }.get(self, "?")


@dataclass
class DockerInfo:
    version: str = ""
    containers_running: int = 0
    images_count: int = 0


@dataclass
class TraefikInfo:
    version: str = ""
    routers_count: int = 0
    services_count: int = 0


@dataclass
class Node:
    """A server running the Archon node agent."""
    name: str
    api_endpoint: str
    api_key: str
    ip_address: IPAddress
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: NodeStatus = NodeStatus.UNKNOWN
    docker_info: Optional[DockerInfo] = None
    traefik_info: Optional[TraefikInfo] = None
    last_health_check: Optional[datetime] = None

    def update_health(
        self,
        status: NodeStatus,
        docker_info: Optional[DockerInfo] = None,
        traefik_info: Optional[TraefikInfo] = None,
    ) -> None:
        self.status = status
        self.docker_info = docker_info
        self.traefik_info = traefik_info
        self.last_health_check = _now()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": str(self.id),
            "name": self.name,
            "api_endpoint": self.api_endpoint,
            "api_key": self.api_key,
            "ip_address": str(self.ip_address),
            "status": self.status.value,
        }
        if self.docker_info:
            data["docker_info"] = {
                "version": self.docker_info.version,
                "containers_running": self.docker_info.containers_running,
                "images_count": self.docker_info.images_count,
            }
        if self.traefik_info:
            data["traefik_info"] = {
                "version": self.traefik_info.version,
                "routers_count": self.traefik_info.routers_count,
                "services_count": self.traefik_info.services_count,
            }
        if self.last_health_check:
            data["last_health_check"] = self.last_health_check.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Node":
        docker = data.get("docker_info")
        traefik = data.get("traefik_info")
        return cls(
            id=_parse_uuid(data.get("id")) or uuid.uuid4(),
            name=str(data.get("name", "")),
            api_endpoint=str(data.get("api_endpoint", "")),
            api_key=str(data.get("api_key", "")),
            ip_address=ipaddress.ip_address(str(data.get("ip_address", ""))),
            status=NodeStatus.from_str(data.get("status", "unknown")),
            docker_info=DockerInfo(
                version=str(docker.get("version", "")),
                containers_running=int(docker.get("containers_running", 0)),
                images_count=int(docker.get("images_count", 0)),
            ) if isinstance(docker, dict) else None,
            traefik_info=TraefikInfo(
                version=str(traefik.get("version", "")),
                routers_count=int(traefik.get("routers_count", 0)),
                services_count=int(traefik.get("services_count", 0)),
            ) if isinstance(traefik, dict) else None,
            last_health_check=_parse_time(data.get("last_health_check")),
        )
