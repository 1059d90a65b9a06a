"""AWS Route53 DNS provider for Archon.

Route53 stores record *sets* (name + type, one or more values) and has no
per-record ID.  The IDs handed out here are synthesized as
``"<fqdn>|<TYPE>|<value>"`` so each one names a single value; updates and
deletes rewrite the set around that value and only delete the set when
its last value goes.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

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
CHANGE_COMMENT = "Managed by Archon"

# Route53 caps each character-string of a TXT value at 255 characters.
TXT_CHUNK_SIZE = 255
_TXT_STRING = re.compile(r'"((?:[^"\\]|\\.)*)"')
_TXT_ESCAPE = re.compile(r"\\(.)")


@contextmanager
def _translate_errors():
    """Map botocore failures onto the provider error taxonomy."""
    try:
        yield
    except ClientError as e:
        error = e.response.get("Error", {})
        raise ProviderError(
            error.get("Code", "Unknown"), error.get("Message", str(e))
        ) from e
    except BotoCoreError as e:
        raise TransportError(f"Failed to reach Route53: {e}") from e
    except KeyError as e:
        raise DecodeError(f"Unexpected Route53 response, missing {e}") from e


def make_record_id(fqdn: str, rtype: str, value: str) -> str:
    return f"{fqdn.rstrip('.')}|{rtype.upper()}|{value}"


def split_record_id(record_id: str) -> tuple[str, str, str]:
    """Return ``(fqdn, TYPE, value)``; the value may itself contain ``|``."""
    parts = record_id.split("|", 2)
    if len(parts) != 3 or not parts[0] or not parts[1]:
        raise ProviderError("InvalidRecordId", f"not a Route53 record ID: {record_id}")
    name, rtype, value = parts
    return name, rtype.upper(), value


def encode_txt(value: str) -> str:
    """Quote a TXT value, splitting it into 255-character strings."""
    chunks = [
        value[i:i + TXT_CHUNK_SIZE] for i in range(0, len(value), TXT_CHUNK_SIZE)
    ] or [""]
    quoted = []
    for chunk in chunks:
        escaped = chunk.replace("\\", "\\\\").replace('"', '\\"')
        quoted.append(f'"{escaped}"')
    return " ".join(quoted)


def decode_txt(raw: str) -> str:
    """Join the quoted strings of a TXT value back into one string."""
    strings = _TXT_STRING.findall(raw)
    if not strings:
        return raw
    return "".join(_TXT_ESCAPE.sub(r"\1", s) for s in strings)


def _encode_value(rtype: str, value: str) -> str:
    return encode_txt(value) if rtype == DnsRecordType.TXT.value else value


def _decode_value(rtype: str, raw: str) -> str:
    return decode_txt(raw) if rtype == DnsRecordType.TXT.value else raw


class Route53Provider(DnsProvider):
    """Route53 DNS provider for one hosted zone.

    Constructor parameters:
      access_key / secret_key: IAM credentials with ``route53:*RecordSets``.
      hosted_zone_id: The hosted zone the records live in.
      default_ttl: TTL used when a record's TTL is 0.
      timeout: Connect/read timeout in seconds.
      client: Optional pre-built boto3 ``route53`` client.
    """

    name = "route53"

    def __init__(
        self,
        access_key: str = "",
        secret_key: str = "",
        hosted_zone_id: str = "",
        default_ttl: int = DEFAULT_TTL,
        timeout: float = 15,
        client: Optional[Any] = None,
    ):
        if not hosted_zone_id:
            raise ProviderConfigError("hosted_zone_id is required")
        self.hosted_zone_id = hosted_zone_id
        self.default_ttl = default_ttl or DEFAULT_TTL
        if client is None:
            client = boto3.client(
                "route53",
                region_name="us-east-1",
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                config=BotoConfig(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"max_attempts": 0},
                ),
            )
        self._client = client

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    def _list_records(self, domain: str) -> list[DnsRecord]:
        records: list[DnsRecord] = []
        paginator = self._client.get_paginator("list_resource_record_sets")

        with _translate_errors():
            for page in paginator.paginate(HostedZoneId=self.hosted_zone_id):
                for rrset in page["ResourceRecordSets"]:
                    records.extend(self._from_record_set(rrset))

        logger.info("Listed %d Route53 records for %s", len(records), domain)
        return records

    def _create_record(self, domain, record, tags):
        fqdn = self._qualify(record.name, domain)
        rtype = record.record_type.value
        current = self._find_record_set(fqdn, rtype, missing_ok=True)

        if current is None:
            ttl = record.ttl or self.default_ttl
            change = self._upsert(fqdn, rtype, [record.value], ttl, action="CREATE")
        else:
            values = self._values(current)
            if record.value not in values:
                values.append(record.value)
            ttl = record.ttl or current.get("TTL") or self.default_ttl
            change = self._upsert(fqdn, rtype, values, ttl)

        self._change([change])
        logger.info("Created Route53 %s record %s -> %s", rtype, fqdn, record.value)
        return self._confirmed(fqdn, record, ttl)

    def _update_record(self, domain, record, tags):
        old_name, old_type, old_value = split_record_id(record.id)
        fqdn = self._qualify(record.name, domain)
        rtype = record.record_type.value

        current = self._find_record_set(old_name, old_type)
        values = self._values(current)
        if old_value not in values:
            raise ProviderError("NotFound", f"{old_value} is not a value of {old_name} {old_type}")

        if old_name.lower() == fqdn.lower() and old_type == rtype:
            new_values: list[str] = []
            for value in values:
                value = record.value if value == old_value else value
                if value not in new_values:
                    new_values.append(value)
            ttl = record.ttl or current.get("TTL") or self.default_ttl
            changes = [self._upsert(fqdn, rtype, new_values, ttl)]
        else:
            # Moving a value to another set shrinks the old set and grows the new one.
            changes = [self._without(current, [v for v in values if v != old_value])]
            target = self._find_record_set(fqdn, rtype, missing_ok=True)
            if target is None:
                ttl = record.ttl or self.default_ttl
                changes.append(self._upsert(fqdn, rtype, [record.value], ttl, action="CREATE"))
            else:
                target_values = self._values(target)
                if record.value not in target_values:
                    target_values.append(record.value)
                ttl = record.ttl or target.get("TTL") or self.default_ttl
                changes.append(self._upsert(fqdn, rtype, target_values, ttl))

        self._change(changes)
        logger.info("Updated Route53 %s record %s -> %s", rtype, fqdn, record.value)
        return self._confirmed(fqdn, record, ttl)

    def _delete_record(self, domain, record_id):
        name, rtype, value = split_record_id(record_id)
        current = self._find_record_set(name, rtype)
        values = self._values(current)
        if value not in values:
            raise ProviderError("NotFound", f"{value} is not a value of {name} {rtype}")

        self._change([self._without(current, [v for v in values if v != value])])
        logger.info("Deleted Route53 %s record %s -> %s", rtype, name, value)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _qualify(name: str, domain: str) -> str:
        """Turn a relative or absolute name into an FQDN without trailing dot."""
        name = name.rstrip(".")
        if not name or name == "@":
            return domain
        if name == domain or name.endswith(f".{domain}"):
            return name
        return f"{name}.{domain}"

    @staticmethod
    def _values(rrset: dict) -> list[str]:
        return [
            _decode_value(rrset["Type"], rr["Value"])
            for rr in rrset.get("ResourceRecords", [])
        ]

    @staticmethod
    def _upsert(
        fqdn: str, rtype: str, values: list[str], ttl: int, action: str = "UPSERT"
    ) -> dict:
        return {
            "Action": action,
            "ResourceRecordSet": {
                "Name": fqdn,
                "Type": rtype,
                "TTL": ttl,
                "ResourceRecords": [{"Value": _encode_value(rtype, v)} for v in values],
            },
        }

    def _without(self, current: dict, remaining: list[str]) -> dict:
        """Change that leaves *current* holding only *remaining*."""
        if not remaining:
            return {"Action": "DELETE", "ResourceRecordSet": current}
        return self._upsert(
            current["Name"].rstrip("."),
            current["Type"],
            remaining,
            current.get("TTL") or self.default_ttl,
        )

    @staticmethod
    def _from_record_set(rrset: dict) -> list[DnsRecord]:
        if "AliasTarget" in rrset or not rrset.get("ResourceRecords"):
            return []
        try:
            rtype = DnsRecordType.from_str(rrset["Type"])
        except ValueError:
            logger.debug("Skipping unsupported %s record %s", rrset.get("Type"), rrset.get("Name"))
            return []

        fqdn = rrset["Name"].rstrip(".")
        return [
            DnsRecord(
                id=make_record_id(fqdn, rtype.value, value),
                record_type=rtype,
                name=fqdn,
                value=value,
                ttl=int(rrset.get("TTL", 0)),
            )
            for value in Route53Provider._values(rrset)
        ]

    @staticmethod
    def _confirmed(fqdn: str, record: DnsRecord, ttl: int) -> DnsRecord:
        return DnsRecord(
            id=make_record_id(fqdn, record.record_type.value, record.value),
            record_type=record.record_type,
            name=fqdn,
            value=record.value,
            ttl=ttl,
            proxied=False,
        )

    def _find_record_set(
        self, fqdn: str, rtype: str, missing_ok: bool = False
    ) -> Optional[dict]:
        with _translate_errors():
            resp = self._client.list_resource_record_sets(
                HostedZoneId=self.hosted_zone_id,
                StartRecordName=fqdn,
                StartRecordType=rtype,
                MaxItems="1",
            )
            for rrset in resp["ResourceRecordSets"]:
                if (
                    rrset["Name"].rstrip(".").lower() == fqdn.lower()
                    and rrset["Type"] == rtype
                ):
                    return rrset
        if missing_ok:
            return None
        raise ProviderError("NotFound", f"no {rtype} record set named {fqdn}")

    def _change(self, changes: list[dict]) -> None:
        logger.debug("Route53 change batch for %s: %d change(s)", self.hosted_zone_id, len(changes))
        with _translate_errors():
            self._client.change_resource_record_sets(
                HostedZoneId=self.hosted_zone_id,
                ChangeBatch={"Comment": CHANGE_COMMENT, "Changes": changes},
            )
