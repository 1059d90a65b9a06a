"""DNS provider abstraction for Archon.

Every backend exposes the same four record operations so calling code
never branches on the provider type:

  - :meth:`DnsProvider.list_records`
  - :meth:`DnsProvider.create_record`
  - :meth:`DnsProvider.update_record`
  - :meth:`DnsProvider.delete_record`

Argument checks that do not depend on the backend (a record ID for update
and delete) run in the base class, so no backend is ever contacted for a
request that cannot succeed.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from archon.models import Domain, DnsProviderConfig, DnsProviderType, DnsRecord

if TYPE_CHECKING:
    from archon.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class DNSProviderError(Exception):
    """Base class for DNS provider failures."""
    pass


class MissingRecordIDError(DNSProviderError):
    """Update or delete was requested without a provider record ID."""
    pass


class TransportError(DNSProviderError):
    """The provider could not be reached (network failure or timeout)."""
    pass


class DecodeError(DNSProviderError):
    """The provider answered with a body that could not be parsed."""
    pass


class ProviderError(DNSProviderError):
    """The provider reported that the request failed."""

    def __init__(self, code, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class ManualDNSError(DNSProviderError):
    """Record changes were requested for a manually managed domain."""
    pass


class ProviderConfigError(DNSProviderError):
    """The provider configuration is missing required credentials."""
    pass


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class DnsProvider(ABC):
    """Record CRUD for one DNS zone."""

    name = "provider"

    def list_records(self, domain: str) -> list[DnsRecord]:
        """Return every record in the zone for *domain*."""
        return self._list_records(domain)

    def create_record(
        self, domain: str, record: DnsRecord, tags: Optional[list[str]] = None
    ) -> DnsRecord:
        """Create *record* and return it with its provider ID populated.

        *tags* are attached where the backend has somewhere to put them and
        ignored otherwise.
        """
        return self._create_record(domain, record, list(tags or []))

    def update_record(
        self, domain: str, record: DnsRecord, tags: Optional[list[str]] = None
    ) -> DnsRecord:
        """Replace the record identified by ``record.id``.

        Raises:
          MissingRecordIDError: ``record.id`` is unset or empty.
        """
        if not record.id:
            raise MissingRecordIDError("record ID is required for updates")
        return self._update_record(domain, record, list(tags or []))

    def delete_record(self, domain: str, record_id: str) -> None:
        """Delete the record identified by *record_id*.

        Raises:
          MissingRecordIDError: *record_id* is empty.
        """
        if not record_id:
            raise MissingRecordIDError("record ID is required for deletion")
        self._delete_record(domain, record_id)

    @abstractmethod
    def _list_records(self, domain: str) -> list[DnsRecord]: ...

    @abstractmethod
    def _create_record(
        self, domain: str, record: DnsRecord, tags: list[str]
    ) -> DnsRecord: ...

    @abstractmethod
    def _update_record(
        self, domain: str, record: DnsRecord, tags: list[str]
    ) -> DnsRecord: ...

    @abstractmethod
    def _delete_record(self, domain: str, record_id: str) -> None: ...


class ManualProvider(DnsProvider):
    """Provider for domains whose records are managed by hand.

    Listing returns the records stored locally on the domain.  Every change
    raises :class:`ManualDNSError`; nothing ever leaves the machine.
    """

    name = "manual"

    def __init__(self, records: Optional[list[DnsRecord]] = None):
        self._records = records if records is not None else []

    def _refuse(self, domain: str) -> ManualDNSError:
        return ManualDNSError(
            f"{domain} uses manual DNS: configure records at your DNS "
            f"provider, then record them here"
        )

    def _list_records(self, domain: str) -> list[DnsRecord]:
        return list(self._records)

    def _create_record(self, domain, record, tags):
        raise self._refuse(domain)

    def _update_record(self, domain, record, tags):
        raise self._refuse(domain)

    def _delete_record(self, domain, record_id):
        raise self._refuse(domain)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def resolve_credentials(
    config: DnsProviderConfig, settings: Optional["Settings"] = None
) -> DnsProviderConfig:
    """Fill empty per-domain credentials from the global settings."""
    if settings is None:
        return config
    return DnsProviderConfig(
        type=config.type,
        api_token=config.api_token or settings.cloudflare_api_token,
        zone_id=config.zone_id,
        access_key=config.access_key or settings.route53_access_key,
        secret_key=config.secret_key or settings.route53_secret_key,
        hosted_zone_id=config.hosted_zone_id,
    )


def validate_provider_config(config: DnsProviderConfig) -> None:
    """Check that *config* carries the credentials its type needs."""
    if config.type == DnsProviderType.CLOUDFLARE:
        missing = [k for k in ("api_token", "zone_id") if not getattr(config, k)]
        if missing:
            raise ProviderConfigError(
                f"Cloudflare provider requires {', '.join(missing)}"
            )
    elif config.type == DnsProviderType.ROUTE53:
        missing = [
            k for k in ("access_key", "secret_key", "hosted_zone_id")
            if not getattr(config, k)
        ]
        if missing:
            raise ProviderConfigError(
                f"Route53 provider requires {', '.join(missing)}"
            )


def create_provider(
    domain: Domain, settings: Optional["Settings"] = None
) -> DnsProvider:
    """Build the provider selected by ``domain.dns_provider``.

    Raises:
      ProviderConfigError: Required credentials are missing.
    """
    config = resolve_credentials(domain.dns_provider, settings)
    validate_provider_config(config)
    logger.debug("Using %s DNS provider for %s", config.type.value, domain.name)

    if config.type == DnsProviderType.MANUAL:
        return ManualProvider(domain.dns_records)

    if config.type == DnsProviderType.CLOUDFLARE:
        from archon.cloudflare_client import CloudflareProvider
        return CloudflareProvider(
            api_token=config.api_token,
            zone_id=config.zone_id,
            default_ttl=settings.default_dns_ttl if settings else 300,
            timeout=settings.request_timeout if settings else 15,
        )

    if config.type == DnsProviderType.ROUTE53:
        from archon.route53_client import Route53Provider
        return Route53Provider(
            access_key=config.access_key,
            secret_key=config.secret_key,
            hosted_zone_id=config.hosted_zone_id,
            default_ttl=settings.default_dns_ttl if settings else 300,
            timeout=settings.request_timeout if settings else 15,
        )

    raise ProviderConfigError(f"unknown DNS provider type: {config.type}")
