"""Web tools: getWeather, searchWeb and convertCurrency.

Uses a separate httpx client from ChatRunner (that one carries the
OpenAI credentials).
"""

from __future__ import annotations

import html as html_module
import ipaddress
import logging
import re
import socket
from typing import Any
from urllib.parse import quote, urljoin, urlparse

import httpx

from toolchat.api.models import ParameterSpec, Tool, ToolSpec
from toolchat.config import Settings

logger = logging.getLogger(__name__)

_WEATHER_URL = "https://wttr.in/{location}"
_SEARCH_URL = "https://www.bing.com/search"
_CONVERT_URL = "https://api.exchangerate.host/convert"

_MAX_REDIRECTS = 5
_REDIRECT_CODES = (301, 302, 303, 307, 308)

_SEARCH_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/113.0.0.0 Safari/537.36",
    "Accept-Language": "en-GB,en;q=0.9",
}

# Blocked IP ranges for caller-supplied search URLs
_BLOCKED_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),       # Loopback
    ipaddress.ip_network("10.0.0.0/8"),         # RFC1918
    ipaddress.ip_network("172.16.0.0/12"),      # RFC1918
    ipaddress.ip_network("192.168.0.0/16"),     # RFC1918
    ipaddress.ip_network("169.254.0.0/16"),     # Link-local
    ipaddress.ip_network("::1/128"),            # IPv6 loopback
    ipaddress.ip_network("fc00::/7"),           # IPv6 unique local
    ipaddress.ip_network("fe80::/10"),          # IPv6 link-local
]


def _is_url_safe(url: str) -> tuple[bool, str]:
    """Check that a URL is http(s) and does not resolve to a private address.

    Returns (is_safe, error_message).
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False, "URL must start with http:// or https://"

    hostname = parsed.hostname
    if not hostname:
        return False, "Could not parse hostname from URL"

    try:
        addr_infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror:
        return False, f"Could not resolve hostname: {hostname}"

    for addr_info in addr_infos:
        ip = ipaddress.ip_address(addr_info[4][0])
        for network in _BLOCKED_NETWORKS:
            if ip in network:
                return False, f"URL resolves to blocked IP range ({network})"

    return True, ""


def _extract_readable(html: str) -> str:
    """Extract readable text from HTML using stdlib."""
    # Remove script, style, noscript, nav, header, footer tags
    text = re.sub(
        r'<(script|style|noscript|nav|header|footer)[^>]*>.*?</\1>',
        '', html, flags=re.DOTALL | re.IGNORECASE
    )
    text = re.sub(r'<!--.*?-->', '', text, flags=re.DOTALL)
    text = re.sub(r'<[^>]+>', ' ', text)
    text = html_module.unescape(text)
    text = re.sub(r'\s+', ' ', text).strip()
    return text


# ---------------------------------------------------------------------------
# Tool handlers
# ---------------------------------------------------------------------------


async def get_weather_tool(location: str, *, _http: httpx.AsyncClient) -> str:
    """One-line current weather report from wttr.in."""
    try:
        response = await _http.get(
            _WEATHER_URL.format(location=quote(location, safe="")),
            params={"format": "3"},
            timeout=10,
        )
        response.raise_for_status()
        return response.text.strip()
    except httpx.HTTPError as e:
        return f"Failed to retrieve weather for {location}: {e}"


async def search_web_tool(
    query: str,
    url: str | None = None,
    *,
    _settings: Settings,
    _http: httpx.AsyncClient,
) -> str:
    """Run a web search and return the result page as plain text.

    Args:
        query: Search query
        url: Search endpoint taking a ``q`` parameter (default: Bing)
        _settings: Internal param set by registration closure
        _http: Internal param set by registration closure

    Returns:
        Readable text of the results page, truncated to web_fetch_max_chars
    """
    search_url = url or _SEARCH_URL
    if url:
        is_safe, error = _is_url_safe(url)
        if not is_safe:
            return f"Blocked: {error}"

    try:
        if not url:
            response = await _http.get(
                search_url,
                params={"q": query},
                headers=_SEARCH_HEADERS,
                follow_redirects=True,
                timeout=15,
            )
        else:
            # Caller-supplied endpoint: follow redirects by hand, checking every hop
            current_url = search_url
            params: dict[str, str] | None = {"q": query}
            for _ in range(_MAX_REDIRECTS + 1):
                response = await _http.get(
                    current_url,
                    params=params,
                    headers=_SEARCH_HEADERS,
                    follow_redirects=False,
                    timeout=15,
                )
                if response.status_code not in _REDIRECT_CODES:
                    break
                location = response.headers.get("location", "")
                if not location:
                    break
                redirect_url = urljoin(current_url, location)
                redirect_safe, redirect_error = _is_url_safe(redirect_url)
                if not redirect_safe:
                    return f"Blocked redirect to unsafe URL: {redirect_error}"
                current_url = redirect_url
                params = None
            else:
                return f"Too many redirects (max {_MAX_REDIRECTS})"
        response.raise_for_status()
    except httpx.HTTPError as e:
        return f"Failed to fetch search results: {e}"

    content_type = response.headers.get("content-type", "")
    text = _extract_readable(response.text) if "html" in content_type else response.text

    max_chars = _settings.web_fetch_max_chars
    if len(text) > max_chars:
        text = text[:max_chars] + "\n\n[... truncated]"

    if not text:
        return f"No results found for: {query}"
    return f"Search results for: {query}\n\n{text}"


async def convert_currency_tool(
    amount: float,
    from_currency: str,
    to_currency: str,
    *,
    _settings: Settings,
    _http: httpx.AsyncClient,
) -> str:
    params: dict[str, Any] = {"from": from_currency, "to": to_currency, "amount": amount}
    if _settings.exchangerate_api_key:
        params["access_key"] = _settings.exchangerate_api_key

    try:
        response = await _http.get(_CONVERT_URL, params=params, timeout=10)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        return f"Failed to convert currency: {e}"

    if not data.get("success"):
        return "Currency conversion failed."
    return f"{amount} {from_currency} = {data.get('result')} {to_currency}"


# ---------------------------------------------------------------------------
# Tool specs
# ---------------------------------------------------------------------------

GET_WEATHER_SPEC = ToolSpec(
    name="getWeather",
    description="Get the current weather for a given location",
    parameters={
        "location": ParameterSpec("string", "The city and country, e.g. 'London, UK'"),
    },
)

SEARCH_WEB_SPEC = ToolSpec(
    name="searchWeb",
    description="Perform a web search for a given query",
    parameters={
        "query": ParameterSpec("string", "The search query to run on Bing"),
        "url": ParameterSpec(
            "string",
            "The URL to search, defaults to Bing if not provided",
            required=False,
        ),
    },
)

CONVERT_CURRENCY_SPEC = ToolSpec(
    name="convertCurrency",
    description="Convert an amount from one currency to another",
    parameters={
        "amount": ParameterSpec("number", "The amount of money to convert"),
        "from": ParameterSpec("string", "The currency code to convert from (e.g. 'USD')"),
        "to": ParameterSpec("string", "The currency code to convert to (e.g. 'EUR')"),
    },
)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def create_web_tools(settings: Settings, http_client: httpx.AsyncClient) -> list[Tool]:
    """Create the web tools with settings and the httpx client injected."""

    async def _weather(location: str) -> str:
        return await get_weather_tool(location, _http=http_client)

    async def _search(query: str, url: str | None = None) -> str:
        return await search_web_tool(query, url, _settings=settings, _http=http_client)

    # "from" is a keyword, so currency codes arrive through **kwargs
    async def _convert(amount: float, to: str, **kwargs: Any) -> str:
        if "from" not in kwargs:
            return "Missing required argument: from"
        return await convert_currency_tool(
            amount, kwargs["from"], to, _settings=settings, _http=http_client
        )

    return [
        Tool(GET_WEATHER_SPEC, _weather),
        Tool(SEARCH_WEB_SPEC, _search),
        Tool(CONVERT_CURRENCY_SPEC, _convert),
    ]
