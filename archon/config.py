"""Configuration management for Archon.

The config file holds both the user's settings and the managed inventory
(sites, domains and nodes), mirroring how the TUI saves its state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from archon.models import Domain, Node, Site

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0.0"


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass
class Settings:
    auto_save: bool = True
    health_check_interval_secs: int = 300
    default_dns_ttl: int = 300
    theme: str = "default"
    request_timeout: int = 15           # seconds, DNS provider API calls
    cloudflare_api_token: str = ""      # fallback for domains without their own
    route53_access_key: str = ""
    route53_secret_key: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "auto_save": self.auto_save,
            "health_check_interval_secs": self.health_check_interval_secs,
            "default_dns_ttl": self.default_dns_ttl,
            "theme": self.theme,
            "request_timeout": self.request_timeout,
        }
        for key in ("cloudflare_api_token", "route53_access_key", "route53_secret_key"):
            if getattr(self, key):
                data[key] = getattr(self, key)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        return cls(
            auto_save=bool(data.get("auto_save", True)),
            health_check_interval_secs=int(data.get("health_check_interval_secs", 300)),
            default_dns_ttl=int(data.get("default_dns_ttl", 300)),
            theme=str(data.get("theme", "default")),
            request_timeout=int(data.get("request_timeout", 15)),
            cloudflare_api_token=str(data.get("cloudflare_api_token", "") or ""),
            route53_access_key=str(data.get("route53_access_key", "") or ""),
            route53_secret_key=str(data.get("route53_secret_key", "") or ""),
        )


@dataclass
class Config:
    version: str = CONFIG_VERSION
    settings: Settings = field(default_factory=Settings)
    sites: list[Site] = field(default_factory=list)
    domains: list[Domain] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)

    CONFIG_PATHS = [
        Path.home() / ".config" / "archon" / "config.yaml",
        Path.home() / ".config" / "archon" / "config.yml",
        Path("config") / "config.yaml",
    ]

    @classmethod
    def find_config_file(cls) -> Optional[Path]:
        """Find the first existing config file."""
        for path in cls.CONFIG_PATHS:
            if path.exists():
                return path
        return None

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML.

        When no file exists a default config is returned and written to
        *path* (or the first search path).
        """
        if path is None:
            path = cls.find_config_file()

        if path is None or not path.exists():
            config = cls()
            target = path or cls.CONFIG_PATHS[0]
            try:
                config.save(target)
            except ConfigError as e:
                logger.warning("Could not write default config: %s", e)
            return config

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config file {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        try:
            return cls.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config file {path}: {e}")

    def save(self, path: Optional[Path] = None) -> Path:
        """Write the config as YAML and return the path written."""
        path = path or self.find_config_file() or self.CONFIG_PATHS[0]
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Failed to write config file {path}: {e}")
        return path

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "sites": [s.to_dict() for s in self.sites],
            "domains": [d.to_dict() for d in self.domains],
            "nodes": [n.to_dict() for n in self.nodes],
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        settings = data.get("settings") or {}
        if not isinstance(settings, dict):
            raise ConfigError("settings must be a mapping")
        return cls(
            version=str(data.get("version", CONFIG_VERSION)),
            settings=Settings.from_dict(settings),
            sites=[Site.from_dict(s) for s in data.get("sites") or []],
            domains=[Domain.from_dict(d) for d in data.get("domains") or []],
            nodes=[Node.from_dict(n) for n in data.get("nodes") or []],
        )
