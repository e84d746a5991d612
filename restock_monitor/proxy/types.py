"""Proxy data models for the session pool."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProxyConfig:
    """A single proxy egress point parsed from the proxy list."""

    host: str
    port: int
    username: str | None = None
    password: str | None = None
    protocol: str = "http"  # http, https, socks5
    label: str = ""

    def __post_init__(self) -> None:
        if not self.label:
            object.__setattr__(self, "label", f"{self.host}:{self.port}")

    @property
    def server(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    def to_playwright(self) -> dict[str, str]:
        """Proxy settings in the shape Playwright's ``launch(proxy=...)`` expects."""
        settings = {"server": self.server}
        if self.has_credentials:
            settings["username"] = self.username  # type: ignore[assignment]
            settings["password"] = self.password  # type: ignore[assignment]
        return settings
