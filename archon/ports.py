"""Port mapping notation for Archon sites.

A site's port is typed as either ``"3000"`` (container and host share the
port) or ``"3000:3001"`` (container port 3000 published on host port 3001).
"""

from __future__ import annotations

MIN_PORT = 1
MAX_PORT = 65535


class PortMappingError(ValueError):
    """Port mapping string could not be parsed."""
    pass


class InvalidFormatError(PortMappingError):
    """Empty input, or more than one ``:`` separator."""
    pass


class InvalidPortError(PortMappingError):
    """A part of the mapping is not an integer."""

    def __init__(self, side: str, raw: str):
        self.side = side
        self.raw = raw
        super().__init__(f"invalid {_label(side)}: {raw!r}")


class PortOutOfRangeError(PortMappingError):
    """A port is outside ``1..65535``."""

    def __init__(self, side: str, port: int):
        self.side = side
        self.port = port
        super().__init__(
            f"{_label(side)} out of range ({MIN_PORT}-{MAX_PORT}): {port}"
        )


def _label(side: str) -> str:
    return "port" if side == "port" else f"{side} port"


def check_port(port: int, side: str = "port") -> int:
    """Return *port* unchanged, or raise :class:`PortOutOfRangeError`."""
    if port < MIN_PORT or port > MAX_PORT:
        raise PortOutOfRangeError(side, port)
    return port


def _parse_part(raw: str, side: str) -> int:
    text = raw.strip()
    # int() would accept "1_000"
    if "_" in text:
        raise InvalidPortError(side, raw)
    try:
        port = int(text)
    except ValueError:
        raise InvalidPortError(side, raw) from None
    return check_port(port, side)


def parse_port_mapping(text: str) -> tuple[int, int]:
    """Parse port notation into ``(container_port, host_port)``.

    Accepts:
      - ``"3000"``: single port, used for both container and host
      - ``"3000:3001"``: container port 3000 mapped to host port 3001

    Raises:
      InvalidFormatError: Empty input or too many ``:`` separators.
      InvalidPortError: A part is not numeric (``side`` says which).
      PortOutOfRangeError: A port is outside 1-65535 (``side`` says which).
    """
    text = (text or "").strip()
    if not text:
        raise InvalidFormatError("port string cannot be empty")

    parts = text.split(":")
    if len(parts) == 1:
        port = _parse_part(parts[0], "port")
        return port, port
    if len(parts) == 2:
        container_port = _parse_part(parts[0], "container")
        host_port = _parse_part(parts[1], "host")
        return container_port, host_port

    raise InvalidFormatError(
        f"invalid port format: {text} (use '3000' or '3000:3001')"
    )


def format_port_mapping(container_port: int, host_port: int = 0) -> str:
    """Format a port pair for display and editing.

    A host port of 0, or one equal to the container port, collapses to the
    single-port form.
    """
    if host_port == 0 or host_port == container_port:
        return str(container_port)
    return f"{container_port}:{host_port}"
