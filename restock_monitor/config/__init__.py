"""Configuration: settings and site profile."""

from restock_monitor.config.settings import MonitorSettings
from restock_monitor.config.site_profile import SiteProfile, load_site_profile

__all__ = [
    "MonitorSettings",
    "SiteProfile",
    "load_site_profile",
]
