"""URL safety checks that keep snapshot fetches off internal networks.

Two layers are provided:

* :func:`check_url` is a static check of the URL string: scheme, a hostname
  blocklist and literal IP addresses.  It never touches the network and is
  re-run on every redirect hop.
* :func:`resolve_public_address` resolves a hostname and refuses it if *any*
  resolved address is private or reserved.  The fetcher's transport calls it
  at connect time and dials the returned address directly, so a DNS answer
  cannot change between the check and the connection.
"""

from __future__ import annotations

import ipaddress
import socket
from typing import Union
from urllib.parse import urlsplit

from readvault.snapshot.models import BlockedReason, SafetyVerdict

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

ALLOWED_SCHEMES = frozenset({"http", "https"})

BLOCKED_HOSTNAMES = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "0.0.0.0",
        "[::1]",
        "metadata.google.internal",  # GCP metadata
        "169.254.169.254",  # AWS/GCP/Azure metadata
    }
)

BLOCKED_NETWORKS = tuple(
    ipaddress.ip_network(net)
    for net in (
        "0.0.0.0/8",  # current network
        "10.0.0.0/8",
        "100.64.0.0/10",  # carrier-grade NAT
        "127.0.0.0/8",
        "169.254.0.0/16",  # link-local
        "172.16.0.0/12",
        "192.0.0.0/24",  # IETF protocol assignments
        "192.0.2.0/24",  # TEST-NET-1
        "192.168.0.0/16",
        "198.18.0.0/15",  # benchmarking
        "198.51.100.0/24",  # TEST-NET-2
        "203.0.113.0/24",  # TEST-NET-3
        "224.0.0.0/4",  # multicast
        "240.0.0.0/4",  # reserved, includes broadcast
        "::/128",
        "::1/128",
        "fc00::/7",  # unique local
        "fe80::/10",  # link-local
        "ff00::/8",  # multicast
        "2001:db8::/32",  # documentation
    )
)


class UnsafeAddressError(Exception):
    """Raised when a hostname resolves to a blocked address."""


def is_blocked_ip(ip: IPAddress) -> bool:
    """Return ``True`` if *ip* falls inside any private or reserved range."""
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in BLOCKED_NETWORKS)


def _literal_ip(hostname: str) -> IPAddress | None:
    candidate = hostname.strip("[]")
    # Drop any IPv6 zone id ("fe80::1%eth0").
    candidate = candidate.split("%", 1)[0]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        return None


def check_hostname(hostname: str) -> SafetyVerdict:
    """Check a bare hostname (no scheme) against the blocklist and IP ranges."""
    host = hostname.strip().lower().rstrip(".")
    if not host:
        return SafetyVerdict(False, BlockedReason.INVALID_URL, "URL has no hostname")
    if host in BLOCKED_HOSTNAMES:
        return SafetyVerdict(False, BlockedReason.SSRF_BLOCKED, f"Hostname {host} is blocked")

    ip = _literal_ip(host)
    if ip is None:
        # Empty or over-long labels fail here and in getaddrinfo alike.
        try:
            host.encode("idna")
        except UnicodeError:
            return SafetyVerdict(False, BlockedReason.INVALID_URL, "Invalid hostname")
        return SafetyVerdict(True)
    if is_blocked_ip(ip):
        return SafetyVerdict(
            False,
            BlockedReason.SSRF_BLOCKED,
            f"IP address {ip} is in a blocked range",
        )
    return SafetyVerdict(True)


def check_url(url: str) -> SafetyVerdict:
    """Classify *url* as fetchable or blocked.

    Returns a :class:`SafetyVerdict`; ``reason`` is ``INVALID_URL`` for
    malformed URLs and foreign schemes, ``SSRF_BLOCKED`` for internal targets.
    """
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
        # Accessing .port validates it and raises on garbage like ":99999".
        _ = parts.port
    except (ValueError, AttributeError):
        return SafetyVerdict(False, BlockedReason.INVALID_URL, "Invalid URL format")

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        label = f"{scheme}:" if scheme else "(none)"
        return SafetyVerdict(
            False, BlockedReason.INVALID_URL, f"Protocol {label} not allowed"
        )
    if not hostname:
        return SafetyVerdict(False, BlockedReason.INVALID_URL, "Invalid URL format")

    return check_hostname(hostname)


def is_safe_url(url: str) -> bool:
    """Shorthand for ``check_url(url).safe``."""
    return check_url(url).safe


def resolve_public_address(host: str, port: int) -> str:
    """Resolve *host* and return one address that is safe to connect to.

    Every address in the answer must be public; a single private record is
    enough to refuse the host.

    Raises:
        UnsafeAddressError: If the host is blocklisted or
            any resolved address is in a blocked range.
        socket.gaierror: If the name does not resolve.
    """
    verdict = check_hostname(host)
    if not verdict.safe:
        raise UnsafeAddressError(verdict.message or f"Host {host} is blocked")

    literal = _literal_ip(host)
    if literal is not None:
        return str(literal)

    infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)

    addresses: list[str] = []
    for _family, _type, _proto, _canon, sockaddr in infos:
        ip = ipaddress.ip_address(str(sockaddr[0]).split("%", 1)[0])
        if is_blocked_ip(ip):
            raise UnsafeAddressError(f"Host {host} resolves to blocked address {ip}")
        addresses.append(str(ip))

    if not addresses:
        raise UnsafeAddressError(f"Host {host} did not resolve to any address")
    return addresses[0]
