"""
Built-in resolver catalogue and relay allow-list.

Resolvers are listed in display order; ranking ties fall back to this
order. A custom list can be loaded from a JSON file.
"""

import json
from pathlib import Path
from typing import Union

from .errors import ConfigurationError
from .models import Resolver


# DoH endpoints the relay is willing to forward to
ALLOWED_DOH_URLS: tuple[str, ...] = (
    "https://dns.alidns.com/dns-query",
    "https://doh.pub/dns-query",
    "https://doh.360.cn/dns-query",
    "https://dns.189.cn/dns-query",
)


# Pre-configured resolver profiles
RESOLVERS: dict[str, Resolver] = {
    r.identifier: r
    for r in [
        Resolver("alidns", "AliDNS", "https://dns.alidns.com/dns-query",
                 ip="223.5.5.5", description="Alibaba public DNS"),
        Resolver("alidns-secondary", "AliDNS Secondary", "https://dns.alidns.com/dns-query",
                 ip="223.6.6.6", description="Alibaba public DNS secondary"),
        Resolver("dnspod", "DNSPod", "https://doh.pub/dns-query",
                 ip="119.29.29.29", description="Tencent DNSPod public DNS"),
        Resolver("114dns", "114DNS", "https://dns.114dns.com/dns-query",
                 ip="114.114.114.114", description="114DNS (not relay allow-listed)"),
        Resolver("114dns-secondary", "114DNS Secondary", "https://dns.114dns.com/dns-query",
                 ip="114.114.115.115", description="114DNS secondary (not relay allow-listed)"),
        Resolver("baidu", "BaiduDNS", "https://doh.360.cn/dns-query",
                 ip="180.76.76.76", description="Baidu public DNS"),
        Resolver("onedns-beijing", "OneDNS Beijing", "https://doh.onedns.net/dns-query",
                 ip="122.112.208.1", description="OneDNS Beijing (not relay allow-listed)"),
        Resolver("onedns-hangzhou", "OneDNS Hangzhou", "https://doh.onedns.net/dns-query",
                 ip="139.9.23.90", description="OneDNS Hangzhou (not relay allow-listed)"),
        Resolver("360", "360 Secure DNS", "https://doh.360.cn/dns-query",
                 ip="1.12.12.12", description="Qihoo 360 secure DNS"),
        Resolver("chinatelecom", "China Telecom", "https://dns.189.cn/dns-query",
                 ip="101.226.4.6", description="China Telecom public DNS"),
        Resolver("chinatelecom-fujian", "China Telecom Fujian", "https://dns.189.cn/dns-query",
                 ip="218.85.152.99", description="China Telecom Fujian"),
        Resolver("chinatelecom-shanghai", "China Telecom Shanghai", "https://dns.189.cn/dns-query",
                 ip="202.96.209.133", description="China Telecom Shanghai"),
        Resolver("chinamobile", "China Mobile", "https://cmcc-dns.do/dns-query",
                 ip="211.136.112.50", description="China Mobile (not relay allow-listed)"),
        Resolver("chinamobile-secondary", "China Mobile Secondary", "https://cmcc-dns.do/dns-query",
                 ip="211.140.13.188", description="China Mobile secondary (not relay allow-listed)"),
    ]
}

# Default resolvers: every built-in one the relay accepts
DEFAULT_RESOLVERS = [
    key for key, r in RESOLVERS.items() if r.endpoint in ALLOWED_DOH_URLS
]


def get_resolver(name: str) -> Resolver:
    """Get a resolver by identifier (case-insensitive)."""
    key = name.lower()
    if key in RESOLVERS:
        return RESOLVERS[key]
    raise ConfigurationError(f"Unknown resolver: {name}. Available: {list(RESOLVERS.keys())}")


def list_resolvers() -> list[str]:
    """List all available resolver identifiers."""
    return list(RESOLVERS.keys())


def load_resolvers(path: Union[str, Path]) -> list[Resolver]:
    """
    Load a resolver list from a JSON file.

    The file holds an array of objects with ``identifier``, ``name`` and
    ``endpoint`` keys, plus optional ``ip`` and ``description``.

    Raises:
        ConfigurationError: If the file is unreadable or malformed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read resolver file {path}: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError(f"Resolver file {path} must contain a JSON array")

    resolvers = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Resolver #{i} in {path} is not an object")
        missing = [k for k in ("identifier", "name", "endpoint") if not entry.get(k)]
        if missing:
            raise ConfigurationError(
                f"Resolver #{i} in {path} is missing: {', '.join(missing)}"
            )
        resolvers.append(Resolver(
            identifier=str(entry["identifier"]),
            name=str(entry["name"]),
            endpoint=str(entry["endpoint"]),
            ip=entry.get("ip"),
            description=entry.get("description"),
        ))
    return resolvers
