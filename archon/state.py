"""Application state for Archon.

All mutable inventory lives on an :class:`AppState` instance that the UI
passes around; nothing here is module-level.  The methods are the
workflows that span several entities (a site and the domains it maps to,
a domain and its provider).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from archon.config import Config, Settings
from archon.dns_provider import DnsProvider, create_provider
from archon.models import (
    DnsProviderConfig,
    DnsRecord,
    DnsRecordType,
    Domain,
    Node,
    Site,
    get_full_domain,
)

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Domain, Optional[Settings]], DnsProvider]


class StateError(Exception):
    """Inventory lookup or consistency error."""
    pass


def _same_name(a: str, b: str) -> bool:
    return a.rstrip(".").lower() == b.rstrip(".").lower()


@dataclass
class AppState:
    sites: list[Site] = field(default_factory=list)
    domains: list[Domain] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)
    provider_factory: ProviderFactory = create_provider

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "AppState":
        return cls(
            sites=config.sites,
            domains=config.domains,
            nodes=config.nodes,
            settings=config.settings,
            **kwargs,
        )

    def to_config(self) -> Config:
        return Config(
            settings=self.settings,
            sites=self.sites,
            domains=self.domains,
            nodes=self.nodes,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_site(self, site_id: uuid.UUID) -> Optional[Site]:
        return next((s for s in self.sites if s.id == site_id), None)

    def get_domain(self, domain_id: uuid.UUID) -> Optional[Domain]:
        return next((d for d in self.domains if d.id == domain_id), None)

    def get_node(self, node_id: Optional[uuid.UUID]) -> Optional[Node]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def site_hostnames(self, site: Site) -> list[str]:
        """Full hostnames the site answers on, in mapping order."""
        return [hostname for _, hostname in self._resolved_hostnames(site)]

    def sites_for_domain(self, domain_id: uuid.UUID) -> list[Site]:
        return [
            site for site in self.sites
            if any(m.domain_id == domain_id for m in site.get_domain_mappings())
        ]

    def _resolved_hostnames(self, site: Site) -> list[tuple[int, str]]:
        resolved = []
        for index, mapping in enumerate(site.get_domain_mappings()):
            domain = self.get_domain(mapping.domain_id)
            if domain is None:
                logger.warning(
                    "Site %s maps to unknown domain %s", site.name, mapping.domain_id
                )
                continue
            resolved.append((index, get_full_domain(domain.name, mapping.subdomain)))
        return resolved

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def add_site(self, site: Site) -> None:
        self.sites.append(site)

    def add_domain(self, domain: Domain) -> None:
        self.domains.append(domain)

    def add_node(self, node: Node) -> None:
        self.nodes.append(node)

    def remove_site(self, site_id: uuid.UUID) -> None:
        self.sites = [s for s in self.sites if s.id != site_id]

    def remove_domain(self, domain_id: uuid.UUID) -> None:
        """Remove a domain that no site maps to."""
        users = self.sites_for_domain(domain_id)
        if users:
            names = ", ".join(s.name for s in users)
            raise StateError(f"Domain is still used by: {names}")
        self.domains = [d for d in self.domains if d.id != domain_id]

    def remove_node(self, node_id: uuid.UUID) -> None:
        """Remove a node that no site is deployed to."""
        users = [s.name for s in self.sites if s.node_id == node_id]
        if users:
            raise StateError(f"Node is still used by: {', '.join(users)}")
        self.nodes = [n for n in self.nodes if n.id != node_id]

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    def provider_for(self, domain: Domain) -> DnsProvider:
        return self.provider_factory(domain, self.settings)

    def switch_dns_provider(
        self, domain: Domain, provider_config: DnsProviderConfig
    ) -> None:
        """Point *domain* at a different provider.

        Records are kept but flagged stale until the next
        :meth:`sync_domain_records`; nothing is contacted here.  The domain
        keeps its own copy of *provider_config*.  Passing the domain's
        current config object back (after editing it in place) always
        counts as a switch.
        """
        if (
            provider_config is not domain.dns_provider
            and provider_config == domain.dns_provider
        ):
            return
        domain.dns_provider = replace(provider_config)
        if domain.dns_records:
            domain.records_stale = True
            logger.warning(
                "%s switched to %s; %d record(s) are unsynced until the next sync",
                domain.name, domain.provider_name, len(domain.dns_records),
            )

    def sync_domain_records(
        self, domain: Domain, provider: Optional[DnsProvider] = None
    ) -> list[DnsRecord]:
        """Replace the domain's records with the provider's current list.

        Provider errors propagate and leave the domain untouched.
        """
        provider = provider or self.provider_for(domain)
        records = provider.list_records(domain.name)
        domain.dns_records = list(records)
        domain.records_stale = False
        logger.info("Synced %d record(s) for %s", len(records), domain.name)
        return domain.dns_records

    def ensure_site_records(self, site: Site, proxied: bool = False) -> dict[str, str]:
        """Point every hostname of *site* at its node's IP address.

        Returns ``hostname -> status`` where status is ``"created"``,
        ``"updated"``, ``"exists"`` or ``"manual"`` (manual-DNS domains are
        never sent to a provider).
        """
        node = self.get_node(site.node_id)
        if node is None:
            raise StateError(f"Site {site.name} has no known node")

        ip = str(node.ip_address)
        rtype = DnsRecordType.AAAA if node.ip_address.version == 6 else DnsRecordType.A
        tags = [f"archon:{site.id}"]
        results: dict[str, str] = {}
        providers: dict[uuid.UUID, DnsProvider] = {}

        for mapping in site.get_domain_mappings():
            domain = self.get_domain(mapping.domain_id)
            if domain is None:
                logger.warning(
                    "Site %s maps to unknown domain %s", site.name, mapping.domain_id
                )
                continue
            hostname = get_full_domain(domain.name, mapping.subdomain)

            if domain.is_manual_dns:
                results[hostname] = "manual"
                continue

            provider = providers.get(domain.id)
            if provider is None:
                provider = providers[domain.id] = self.provider_for(domain)
                self.sync_domain_records(domain, provider)

            existing = next(
                (
                    r for r in domain.dns_records
                    if r.record_type == rtype and _same_name(r.name, hostname)
                ),
                None,
            )

            if existing is None:
                created = provider.create_record(
                    domain.name,
                    DnsRecord(record_type=rtype, name=hostname, value=ip, proxied=proxied),
                    tags=tags,
                )
                domain.dns_records.append(created)
                results[hostname] = "created"
            elif existing.value == ip:
                results[hostname] = "exists"
            else:
                updated = provider.update_record(
                    domain.name,
                    DnsRecord(
                        id=existing.id,
                        record_type=rtype,
                        name=existing.name,
                        value=ip,
                        ttl=existing.ttl,
                        proxied=proxied,
                    ),
                    tags=tags,
                )
                domain.dns_records[domain.dns_records.index(existing)] = updated
                results[hostname] = "updated"

        return results

    # ------------------------------------------------------------------
    # Reverse proxy
    # ------------------------------------------------------------------

    def traefik_labels(self, site: Site) -> dict[str, str]:
        """Traefik labels for the site's hostnames on Traefik-enabled domains."""
        hostnames = []
        for index, hostname in self._resolved_hostnames(site):
            domain = self.get_domain(site.get_domain_mappings()[index].domain_id)
            if domain is not None and domain.traefik_enabled:
                hostnames.append((index, hostname))
        return site.generate_traefik_labels(hostnames)
