"""Proxy list parsing.

Each line of the proxy list has the form ``host:port[:username[:password]]``.
Blank lines and ``#`` comments are ignored; malformed lines are skipped with
a warning rather than aborting the load. Passwords may themselves contain
``:``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from restock_monitor.errors import ConfigurationError
from restock_monitor.proxy.types import ProxyConfig

logger = logging.getLogger(__name__)


def _masked(line: str) -> str:
    """The line with any password segment hidden, for log output."""
    segments = line.split(":")
    if len(segments) > 3:
        segments[3:] = ["***"]
    return ":".join(segments)


def parse_proxy_line(line: str, line_number: int = 0) -> ProxyConfig | None:
    """Parse one proxy list line; return ``None`` for blanks, comments and bad lines."""
    trimmed = line.strip()
    if not trimmed or trimmed.startswith("#"):
        return None

    segments = trimmed.split(":")
    if len(segments) < 2:
        logger.warning("Skipping invalid proxy entry on line %d: %s", line_number, _masked(trimmed))
        return None

    host = segments[0].strip()
    try:
        port = int(segments[1].strip())
    except ValueError:
        port = 0

    if not host or port <= 0 or port > 65535:
        logger.warning("Skipping invalid proxy entry on line %d: %s", line_number, _masked(trimmed))
        return None

    username: str | None = None
    password: str | None = None

    if len(segments) >= 3:
        username = segments[2].strip() or None

    if len(segments) >= 4:
        password = ":".join(segments[3:]).strip() or None

    return ProxyConfig(host=host, port=port, username=username, password=password)


def parse_proxy_list(raw: str) -> list[ProxyConfig]:
    """Parse the full text of a proxy list, dropping invalid lines."""
    proxies: list[ProxyConfig] = []
    for index, line in enumerate(raw.splitlines(), start=1):
        parsed = parse_proxy_line(line, index)
        if parsed is not None:
            proxies.append(parsed)
    return proxies


def load_proxy_list(path: str | Path) -> list[ProxyConfig]:
    """Read and parse the proxy list file.

    Raises ``ConfigurationError`` if the file cannot be read or yields no
    valid entries.
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read {path}: {exc}") from exc

    proxies = parse_proxy_list(raw)
    if not proxies:
        raise ConfigurationError(f"{path} must contain at least one valid proxy entry.")

    logger.info("Loaded %d proxies from %s", len(proxies), path)
    return proxies
