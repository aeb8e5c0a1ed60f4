"""
Client metadata extraction (IP address and user agent).

Used for IP binding of check-in tokens, rate-limit keys and the session
audit log. X-Forwarded-For and X-Real-IP are honoured only when the socket
peer is listed in TRUSTED_PROXIES; any other caller is identified by its
peer address, whatever headers it sends.
"""

import ipaddress

from starlette.requests import HTTPConnection

from shared.config.constants import UNKNOWN_CLIENT
from shared.config.settings import settings


def _is_trusted(host: str, trusted: list[str]) -> bool:
    """Exact match, or membership in a CIDR entry such as 10.0.0.0/8."""
    if host in trusted:
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    for entry in trusted:
        if "/" not in entry:
            continue
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def resolve_client_ip(
    request: HTTPConnection, trusted_proxies: list[str] | None = None
) -> str:
    """
    Client IP as seen through the trusted proxy chain.

    An untrusted peer is the client. Behind a trusted peer the
    X-Forwarded-For hops are walked right to left and the first hop that
    is not itself a trusted proxy wins; X-Real-IP is the fallback.

    Args:
        trusted_proxies: Overrides settings.trusted_proxy_list.
    """
    trusted = settings.trusted_proxy_list if trusted_proxies is None else trusted_proxies
    peer = request.client.host if request.client and request.client.host else UNKNOWN_CLIENT

    if not trusted or not _is_trusted(peer, trusted):
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _is_trusted(hop, trusted):
                return hop
        if hops:
            return hops[0]

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return peer


def resolve_user_agent(request: HTTPConnection) -> str:
    """User-Agent header, or "unknown" when absent or blank."""
    user_agent = request.headers.get("user-agent")
    return user_agent.strip() if user_agent and user_agent.strip() else UNKNOWN_CLIENT
