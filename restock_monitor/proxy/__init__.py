"""Proxy list parsing, per-proxy browser sessions and the session pool."""

from restock_monitor.proxy.parser import load_proxy_list, parse_proxy_line, parse_proxy_list
from restock_monitor.proxy.pool import SessionPool
from restock_monitor.proxy.session import ProxySession, SessionState
from restock_monitor.proxy.types import ProxyConfig

__all__ = [
    "ProxyConfig",
    "ProxySession",
    "SessionPool",
    "SessionState",
    "load_proxy_list",
    "parse_proxy_line",
    "parse_proxy_list",
]
