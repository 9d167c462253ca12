"""Client IP extraction behind known reverse proxies."""

from __future__ import annotations

from starlette.requests import HTTPConnection

DEFAULT_PROXY_PRESET = "direct"

# Header carrying the original client address, per deployment preset.
# None means trust the socket peer address.
PROXY_HEADERS: dict[str, str | None] = {
    "direct": None,
    "cloudflare": "cf-connecting-ip",
    "nginx": "x-real-ip",
    "aws": "x-forwarded-for",
    "gcp": "x-forwarded-for",
    "azure": "x-forwarded-for",
    "vercel": "x-forwarded-for",
}


def client_ip(conn: HTTPConnection, preset: str = DEFAULT_PROXY_PRESET) -> str:
    """Best guess at the client's address for log lines."""
    header = PROXY_HEADERS.get(preset)
    if header:
        value = conn.headers.get(header, "")
        # X-Forwarded-For is "client, proxy1, proxy2"
        first = value.split(",", 1)[0].strip()
        if first:
            return first
    return conn.client.host if conn.client else "unknown"
