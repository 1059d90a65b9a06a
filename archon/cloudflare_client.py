"""Cloudflare DNS provider for Archon.

Uses the Cloudflare v4 REST API to manage the DNS records of a single
zone.  Authentication is via a scoped API token (Bearer token).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from archon.dns_provider import (
    DecodeError,
    DnsProvider,
    ProviderConfigError,
    ProviderError,
    TransportError,
)
from archon.models import DnsRecord, DnsRecordType

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300


class CloudflareProvider(DnsProvider):
    """Cloudflare DNS provider.

    Manages DNS records via the Cloudflare v4 API.  Requires a scoped
    API token with DNS edit permission on the zone.

    Constructor parameters:
      api_token: A Cloudflare API token (used as ``Authorization: Bearer <token>``).
      zone_id: The Cloudflare zone ID the records live in.
      default_ttl: TTL sent when a record's TTL is 0.
      timeout: Per-request timeout in seconds.
      session: Optional ``requests.Session`` (tests pass a double).
    """

    name = "cloudflare"
    BASE_URL = "https://api.cloudflare.com/client/v4"

    def __init__(
        self,
        api_token: str,
        zone_id: str,
        default_ttl: int = DEFAULT_TTL,
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        if not api_token:
            raise ProviderConfigError("api_token is required")
        if not zone_id:
            raise ProviderConfigError("zone_id is required")
        self._api_token = api_token
        self.zone_id = zone_id
        self.default_ttl = default_ttl or DEFAULT_TTL
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def records_path(self) -> str:
        return f"/zones/{self.zone_id}/dns_records"

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    def _list_records(self, domain: str) -> list[DnsRecord]:
        """Page through ``GET /zones/{zone_id}/dns_records``.

        Records whose type Archon does not model (NS, CAA, ...) are skipped.
        """
        records: list[DnsRecord] = []
        page = 1

        while True:
            resp = self._request(
                "GET", self.records_path, params={"per_page": 100, "page": page}
            )
            result_list = resp.get("result") or []
            if not isinstance(result_list, list):
                raise DecodeError("Cloudflare returned a non-list record result")

            for raw in result_list:
                if not isinstance(raw, dict):
                    raise DecodeError(f"Cloudflare returned a malformed record: {raw!r}")
                try:
                    records.append(self._from_cloudflare(raw))
                except ValueError:
                    logger.debug(
                        "Skipping unsupported %s record %s",
                        raw.get("type"), raw.get("name"),
                    )

            result_info = resp.get("result_info") or {}
            if not isinstance(result_info, dict):
                raise DecodeError("Cloudflare returned a malformed result_info")
            try:
                total_pages = int(result_info.get("total_pages", 1))
            except (TypeError, ValueError) as e:
                raise DecodeError(f"Cloudflare returned a malformed total_pages: {e}") from e
            if not result_list or page >= total_pages:
                break
            page += 1

        logger.info("Listed %d Cloudflare records for %s", len(records), domain)
        return records

    def _create_record(self, domain, record, tags):
        body = self._to_cloudflare(record, tags)
        resp = self._request("POST", self.records_path, data=body)
        created = self._result_record(resp)
        logger.info(
            "Created Cloudflare %s record %s (%s)",
            created.record_type, created.name, created.id,
        )
        return created

    def _update_record(self, domain, record, tags):
        body = self._to_cloudflare(record, tags)
        resp = self._request("PUT", f"{self.records_path}/{record.id}", data=body)
        updated = self._result_record(resp)
        logger.info(
            "Updated Cloudflare %s record %s (%s)",
            updated.record_type, updated.name, updated.id,
        )
        return updated

    def _delete_record(self, domain, record_id):
        self._request("DELETE", f"{self.records_path}/{record_id}")
        logger.info("Deleted Cloudflare record %s from %s", record_id, domain)

    # ------------------------------------------------------------------
    # Wire format
    # ------------------------------------------------------------------

    def _to_cloudflare(self, record: DnsRecord, tags: list[str]) -> dict:
        """Build the request body, applying the default TTL."""
        body: dict[str, Any] = {
            "type": record.record_type.value,
            "name": record.name,
            "content": record.value,
            "ttl": record.ttl or self.default_ttl,
            "proxied": record.proxied,
        }
        if tags:
            body["comment"] = tags[0]
        return body

    @staticmethod
    def _from_cloudflare(raw: dict) -> DnsRecord:
        """Convert a Cloudflare record dict.  Raises ``ValueError`` on unknown types."""
        record_id = raw.get("id")
        return DnsRecord(
            id=str(record_id) if record_id else None,
            record_type=DnsRecordType.from_str(raw.get("type", "")),
            name=raw.get("name", ""),
            value=raw.get("content", ""),
            ttl=int(raw.get("ttl", 0) or 0),
            proxied=bool(raw.get("proxied", False)),
        )

    def _result_record(self, resp: dict) -> DnsRecord:
        """Decode the single record in a create or update response."""
        result = resp.get("result")
        if not isinstance(result, dict):
            raise DecodeError("Cloudflare response is missing the record result")
        try:
            return self._from_cloudflare(result)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Cloudflare returned a malformed record: {e}") from e

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        data: dict | None = None,
        params: dict | None = None,
    ) -> dict:
        """Make an authenticated API request to Cloudflare.

        Returns:
          The parsed JSON envelope (``success``, ``errors``, ``result``).

        Raises:
          TransportError: Connection failure or timeout.
          DecodeError: The body is not a JSON object.
          ProviderError: The API reported ``success == false`` or an HTTP
              error without a readable envelope.
        """
        url = f"{self.BASE_URL}{path}"
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }

        logger.debug("Cloudflare %s %s", method, path)
        try:
            resp = self._session.request(
                method,
                url,
                headers=headers,
                json=data,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Failed to connect to Cloudflare API: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            if not resp.ok:
                raise ProviderError(resp.status_code, resp.reason or "HTTP error") from e
            raise DecodeError(f"Invalid JSON response from Cloudflare: {e}") from e

        if not isinstance(body, dict):
            if not resp.ok:
                raise ProviderError(resp.status_code, resp.reason or "HTTP error")
            raise DecodeError("Cloudflare response is not a JSON object")

        if not body.get("success", False):
            errors = body.get("errors") or []
            if not isinstance(errors, list):
                errors = [errors]
            if errors:
                first = errors[0]
                if not isinstance(first, dict):
                    raise ProviderError(resp.status_code, str(first))
                raise ProviderError(
                    first.get("code", resp.status_code),
                    first.get("message", "Unknown error"),
                )
            raise ProviderError(
                resp.status_code, "Cloudflare API returned success=false with no details"
            )

        return body
