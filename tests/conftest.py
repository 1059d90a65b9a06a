"""Shared fixtures for the Archon test suite."""

import ipaddress
import uuid
from unittest.mock import MagicMock

import pytest

from archon.models import DnsProviderConfig, DnsProviderType, Domain, Node, Site


def make_response(payload=None, status_code=200, reason="OK", json_error=None):
    """Build a stand-in for ``requests.Response``."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.reason = reason
    resp.ok = status_code < 400
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    """A ``requests.Session`` double; set ``session.request.return_value``."""
    return MagicMock()


@pytest.fixture
def cloudflare_domain():
    return Domain.create(
        "example.com",
        DnsProviderConfig(
            type=DnsProviderType.CLOUDFLARE, api_token="cf-token", zone_id="zone-1"
        ),
    )


@pytest.fixture
def manual_domain():
    return Domain.create("manual.example")


@pytest.fixture
def node():
    return Node(
        name="node-1",
        api_endpoint="https://node-1:8443",
        api_key="node-key",
        ip_address=ipaddress.ip_address("203.0.113.10"),
    )


@pytest.fixture
def site(cloudflare_domain, node):
    return Site.create("blog", cloudflare_domain.id, node.id, "ghost:5", 2368)


@pytest.fixture
def legacy_site():
    """A site as persisted before domain mappings existed."""
    return Site(
        name="legacy",
        node_id=uuid.uuid4(),
        docker_image="nginx:latest",
        domain_id=uuid.uuid4(),
        port=8080,
    )
