"""SSRF-safe article page fetcher.

Every hop (initial URL and each redirect target) is resolved and checked
to be a public address, and the connection goes to the validated IP to
prevent DNS rebinding. All failures surface as FetchError.
"""

import ipaddress
import socket
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import NamedTuple
from urllib.parse import urljoin, urlparse

import urllib3

from wedding_news.errors import FetchError, UnsafeURLError

MAX_REDIRECTS = 5
REDIRECT_STATUSES = {301, 302, 303, 307, 308}
DNS_TIMEOUT_SECONDS = 5
CONNECT_TIMEOUT_SECONDS = 5.0
# News pages above this are ads or media, not articles
MAX_PAGE_BYTES = 5 * 1024 * 1024
USER_AGENT = "Mozilla/5.0 (compatible; WeddingNewsCurator/1.0)"
ACCEPT = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"

_dns_executor = ThreadPoolExecutor(max_workers=4)


class _Target(NamedTuple):
    scheme: str
    hostname: str
    ip: str
    port: int
    path: str

    @property
    def host_header(self) -> str:
        default_port = 443 if self.scheme == "https" else 80
        if self.port == default_port:
            return self.hostname
        return f"{self.hostname}:{self.port}"


def is_safe_ip(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """Check if an IP address is globally routable (not private/reserved)."""
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def _getaddrinfo(hostname: str) -> list[tuple]:
    # getaddrinfo() has no timeout parameter of its own
    future = _dns_executor.submit(socket.getaddrinfo, hostname, None)
    try:
        return future.result(timeout=DNS_TIMEOUT_SECONDS)
    except FuturesTimeoutError:
        future.cancel()
        raise UnsafeURLError(f"DNS resolution timed out for {hostname}")
    except socket.gaierror:
        raise UnsafeURLError(f"DNS resolution failed for {hostname}")


def resolve_public_ip(hostname: str) -> str:
    """Return the first address of hostname, requiring every address to be public.

    Raises:
        UnsafeURLError: any address is unsafe, or nothing resolved.
    """
    try:
        literal = ipaddress.ip_address(hostname)
    except ValueError:
        literal = None
    if literal is not None:
        if not is_safe_ip(literal):
            raise UnsafeURLError(f"IP address {literal} is not safe")
        return str(literal)

    addresses = [info[4][0] for info in _getaddrinfo(hostname)]
    if not addresses:
        raise UnsafeURLError(f"No addresses found for {hostname}")
    unsafe = [a for a in addresses if not is_safe_ip(ipaddress.ip_address(a))]
    if unsafe:
        raise UnsafeURLError(f"Hostname {hostname} resolves to unsafe IP {unsafe[0]}")
    return addresses[0]


def _validated_target(url: str) -> _Target:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise UnsafeURLError(f"Unsupported scheme: {parsed.scheme!r}")
    if not parsed.hostname:
        raise UnsafeURLError(f"No hostname in {url}")

    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return _Target(
        scheme=parsed.scheme,
        hostname=parsed.hostname,
        ip=resolve_public_ip(parsed.hostname),
        port=parsed.port or (443 if parsed.scheme == "https" else 80),
        path=path,
    )


def _open(target: _Target, timeout: float) -> urllib3.HTTPResponse:
    pool_kwargs = {
        "host": target.ip,
        "port": target.port,
        "timeout": urllib3.Timeout(
            connect=min(timeout, CONNECT_TIMEOUT_SECONDS), read=timeout
        ),
        "retries": False,
        "maxsize": 1,
        "block": False,
    }
    if target.scheme == "https":
        # SNI and certificate checks use the original name, not the IP
        pool = urllib3.HTTPSConnectionPool(server_hostname=target.hostname, **pool_kwargs)
    else:
        pool = urllib3.HTTPConnectionPool(**pool_kwargs)

    return pool.request(
        "GET",
        target.path,
        headers={
            "Host": target.host_header,
            "User-Agent": USER_AGENT,
            "Accept": ACCEPT,
        },
        redirect=False,
        assert_same_host=False,
        preload_content=False,
    )


def _charset(response: urllib3.HTTPResponse) -> str:
    content_type = response.headers.get("Content-Type") or ""
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip().strip("\"'")
    return "utf-8"


def _read_body(response: urllib3.HTTPResponse, url: str) -> str:
    try:
        body = response.read(MAX_PAGE_BYTES + 1)
    finally:
        response.release_conn()
    if len(body) > MAX_PAGE_BYTES:
        raise FetchError(f"{url} is larger than {MAX_PAGE_BYTES} bytes")
    try:
        return body.decode(_charset(response), errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def fetch_page(url: str, timeout: float = 10.0) -> str:
    """Fetch an article page, validating every redirect hop.

    Blocking (urllib3). Async callers run it with asyncio.to_thread().

    Raises:
        UnsafeURLError: URL or a redirect target is not a public address.
        FetchError: transport error, timeout, non-200 status, oversized
            body, or too many redirects.
    """
    current_url = url
    for _ in range(MAX_REDIRECTS + 1):
        target = _validated_target(current_url)
        try:
            response = _open(target, timeout)
            if response.status in REDIRECT_STATUSES:
                response.release_conn()
                location = response.headers.get("Location")
                if not location:
                    raise FetchError(f"Redirect without Location from {current_url}")
                current_url = urljoin(current_url, location)
                continue
            if response.status != 200:
                response.release_conn()
                raise FetchError(f"{current_url} returned status {response.status}")
            return _read_body(response, current_url)
        except (urllib3.exceptions.HTTPError, OSError) as exc:
            raise FetchError(f"Request to {current_url} failed: {exc}") from exc

    raise FetchError(f"Too many redirects fetching {url}")
