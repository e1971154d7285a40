"""
Privacy hashing for click analytics.

Responsibilities:
    - Reduce a client IP to its network prefix (IPv4 /24, IPv6 /48)
    - Reduce a user agent to a coarse device category
    - Turn both into salted, truncated, one-way hashes
    - Clean referrers (drop query and fragment, cap length)
    - Flag crawler / preview-fetcher user agents

Notes:
    - Nothing here is reversible and nothing keeps the raw inputs.
    - Inputs that cannot be parsed produce None rather than a hash of the raw value.
"""

import hashlib
import hmac
import ipaddress
from typing import Optional, Tuple

MAX_REFERRER_LENGTH = 500
DIRECT_REFERRER = "direct"
HASH_HEX_LENGTH = 16

BOT_TOKENS: Tuple[str, ...] = (
    "bot",
    "crawler",
    "spider",
    "slurp",
    "facebook",
    "twitter",
    "linkedin",
    "pinterest",
    "whatsapp",
    "telegram",
    "preview",
    "fetch",
    "curl",
    "wget",
)


def salted_hash(value: str, salt: str = "") -> str:
    """HMAC-SHA256 of `value` keyed by `salt`, truncated to 16 hex chars."""
    digest = hmac.new(salt.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()
    return digest[:HASH_HEX_LENGTH]


def _strip_port(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("["):
        # [v6]:port
        end = raw.find("]")
        return raw[1:end] if end > 0 else raw
    if raw.count(":") == 1:
        # v4:port
        return raw.split(":", 1)[0]
    return raw


def truncate_ip(raw_ip: str) -> Optional[str]:
    """
    Network prefix of an address: "10.1.2.3" -> "10.1.2.0", IPv6 to its /48.

    IPv4-mapped IPv6 addresses are treated as IPv4. Returns None for anything
    that is not an IP address.
    """
    if not raw_ip:
        return None
    try:
        addr = ipaddress.ip_address(_strip_port(raw_ip))
    except ValueError:
        return None
    if addr.version == 6 and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    prefix = 24 if addr.version == 4 else 48
    return str(ipaddress.ip_network(f"{addr}/{prefix}", strict=False).network_address)


def hash_ip(raw_ip: str, salt: str = "") -> Optional[str]:
    truncated = truncate_ip(raw_ip)
    if truncated is None:
        return None
    return salted_hash(truncated, salt)


def device_type(user_agent: str) -> str:
    """mobile, tablet, bot or desktop; first match wins in that order."""
    ua = (user_agent or "").lower()
    if "mobile" in ua or "android" in ua:
        return "mobile"
    if "tablet" in ua or "ipad" in ua:
        return "tablet"
    if "bot" in ua or "crawler" in ua or "spider" in ua:
        return "bot"
    return "desktop"


def hash_device(user_agent: str, salt: str = "") -> Optional[str]:
    if not user_agent:
        return None
    return salted_hash(device_type(user_agent), salt)


def normalize_referrer(referrer: Optional[str]) -> str:
    referrer = (referrer or "").strip()
    if not referrer:
        return DIRECT_REFERRER
    for sep in ("?", "#"):
        idx = referrer.find(sep)
        if idx > 0:
            referrer = referrer[:idx]
    return referrer[:MAX_REFERRER_LENGTH]


def is_bot(user_agent: Optional[str]) -> bool:
    ua = (user_agent or "").lower()
    return any(token in ua for token in BOT_TOKENS)
