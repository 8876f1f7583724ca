import ipaddress
import logging
import re
import socket
import threading
from typing import Any, Dict, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .errors import InvalidInput

logger = logging.getLogger("messenger")

URL_RE = re.compile(r"https?://[^\s<>\"']+")
USER_AGENT = "Mozilla/5.0 (compatible; MessengerLinkPreview/1.0)"
MAX_CACHE_ENTRIES = 512
MAX_REDIRECTS = 3
MAX_BODY_BYTES = 512 * 1024

_cache: Dict[str, Dict[str, Any]] = {}
_cache_lock = threading.Lock()


def first_url(text: str) -> Optional[str]:
    match = URL_RE.search(text or "")
    return match.group(0).rstrip(".,);") if match else None


def check_public_url(url: str) -> None:
    """
    Raise InvalidInput unless every address ``url``'s host resolves to is a
    public one. Loopback, private, link-local and reserved ranges are refused.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidInput("invalid_url")

    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        infos = socket.getaddrinfo(parsed.hostname, port, proto=socket.IPPROTO_TCP)
    except socket.gaierror:
        raise InvalidInput("unresolvable_host", host=parsed.hostname)

    for info in infos:
        ip = ipaddress.ip_address(info[4][0].split("%")[0])
        if ip.version == 6 and ip.ipv4_mapped:
            ip = ip.ipv4_mapped
        if not ip.is_global or ip.is_multicast:
            raise InvalidInput("blocked_url", host=parsed.hostname)


def _read_capped(response) -> str:
    chunks = []
    size = 0
    for chunk in response.iter_content(chunk_size=8192):
        chunks.append(chunk)
        size += len(chunk)
        if size >= MAX_BODY_BYTES:
            break
    response.close()
    return b"".join(chunks)[:MAX_BODY_BYTES].decode(response.encoding or "utf-8", errors="replace")


def _download(url: str):
    """Returns (html, final_url). Every hop is checked before it is requested."""
    for _ in range(MAX_REDIRECTS + 1):
        check_public_url(url)
        response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=5,
                                allow_redirects=False, stream=True)
        if response.is_redirect:
            location = response.headers.get("Location")
            response.close()
            url = urljoin(url, location)
            continue
        response.raise_for_status()
        return _read_capped(response), url
    raise requests.exceptions.TooManyRedirects(f"More than {MAX_REDIRECTS} redirects")


def _meta(soup, prop: str) -> Optional[str]:
    tag = soup.find("meta", property=prop) or soup.find("meta", attrs={"name": prop})
    if tag and tag.get("content"):
        return tag["content"].strip()
    return None


def parse_preview(page: str, final_url: str) -> Dict[str, Any]:
    soup = BeautifulSoup(page, "html.parser")
    domain = urlparse(final_url).hostname or final_url

    title = _meta(soup, "og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()
    description = _meta(soup, "og:description") or _meta(soup, "description")
    image = _meta(soup, "og:image")

    return {
        "url": final_url,
        "domain": domain,
        "title": title or domain,
        "description": description,
        "image": urljoin(final_url, image) if image else None,
    }


def fetch_preview(url: str) -> Optional[Dict[str, Any]]:
    """
    Preview for a public http(s) URL, or None when the page cannot be
    fetched. Raises InvalidInput for URLs pointing at non-public hosts.
    """
    with _cache_lock:
        if url in _cache:
            return _cache[url]

    try:
        page, final_url = _download(url)
    except requests.exceptions.RequestException as e:
        logger.info(f"[LINK_PREVIEW] Fetch failed for {url}: {e}")
        return None

    preview = parse_preview(page, final_url)
    with _cache_lock:
        if len(_cache) >= MAX_CACHE_ENTRIES:
            _cache.clear()
        _cache[url] = preview
    return preview
