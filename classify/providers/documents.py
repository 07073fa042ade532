"""
Link fetching: turns an http(s) URL into plain text for the classifier.
"""

import ipaddress
import socket
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from ..errors import FetchError
from .base import Document, get_registry

_HTML_TYPES = ("text/html", "application/xhtml+xml")

# Cloud metadata endpoints reachable by name rather than by address
_BLOCKED_HOSTNAMES = frozenset({"metadata.google.internal"})


def extract_html_text(html_content: str) -> str:
    """
    Visible text of an HTML page, one block per line.

    Script, style and noscript elements are dropped; blank lines and
    surrounding whitespace are removed.
    """
    soup = BeautifulSoup(html_content, "html.parser")
    for element in soup(["script", "style", "noscript"]):
        element.decompose()

    lines = (line.strip() for line in soup.get_text(separator="\n").splitlines())
    return "\n".join(line for line in lines if line)


def _decode(raw: bytes, encoding: str | None) -> str:
    """Decode a response body, falling back to utf-8 for unknown charsets."""
    try:
        return raw.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def _is_blocked_address(addr: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    return (addr.is_private or addr.is_loopback or addr.is_link_local
            or addr.is_reserved or addr.is_unspecified or addr.is_multicast)


class HttpDocumentProvider:
    """
    Fetches http(s) links with requests.

    Redirects are followed one hop at a time so each target is checked
    against private and internal addresses before it is requested.
    """

    _MAX_REDIRECTS = 5
    _CHUNK_SIZE = 64 * 1024

    def __init__(self, timeout: int = 30, max_size: int = 10_000_000):
        """
        Args:
            timeout: Per-request timeout in seconds
            max_size: Bytes read from the response before it is cut off
        """
        self.timeout = timeout
        self.max_size = max_size

    def supports(self, uri: str) -> bool:
        return uri.startswith(("http://", "https://"))

    @staticmethod
    def _is_private_url(uri: str) -> bool:
        """True if the URL's host is, or resolves to, a non-public address.

        The check resolves the name itself, so requests may still connect
        to a different address if DNS changes in between.
        """
        hostname = urlparse(uri).hostname
        if not hostname or hostname in _BLOCKED_HOSTNAMES:
            return True

        try:
            return _is_blocked_address(ipaddress.ip_address(hostname))
        except ValueError:
            pass  # a name, not an address

        try:
            infos = socket.getaddrinfo(hostname, None)
        except socket.gaierror:
            return False  # requests reports the lookup failure
        return any(_is_blocked_address(ipaddress.ip_address(info[4][0])) for info in infos)

    def _open(self, uri: str) -> requests.Response:
        from classify import __version__

        target = uri
        for _ in range(self._MAX_REDIRECTS + 1):
            resp = requests.get(
                target,
                timeout=self.timeout,
                headers={"User-Agent": f"classify/{__version__}"},
                stream=True,
                allow_redirects=False,
            )
            if not resp.is_redirect:
                return resp
            resp.close()
            target = urljoin(target, resp.headers.get("Location", ""))
            if not self.supports(target):
                raise FetchError(f"Redirect to unsupported scheme: {target}")
            if self._is_private_url(target):
                raise FetchError(f"Redirect to private/internal address blocked: {target}")
        raise FetchError(f"Too many redirects fetching {uri}")

    def _read_body(self, resp: requests.Response) -> bytes:
        """Read at most max_size bytes, rejecting a declared size over the limit."""
        declared = resp.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_size:
            raise FetchError(f"Content too large: {declared} bytes")

        body = bytearray()
        for chunk in resp.iter_content(chunk_size=self._CHUNK_SIZE):
            body.extend(chunk)
            if len(body) >= self.max_size:
                break
        return bytes(body[:self.max_size])

    def fetch(self, uri: str) -> Document:
        if not self.supports(uri):
            raise FetchError(f"Unsupported URL scheme: {uri}")
        if self._is_private_url(uri):
            raise FetchError(f"Blocked request to private/internal address: {uri}")

        try:
            resp = self._open(uri)
            with resp:
                if not resp.ok:
                    raise FetchError(f"Failed to fetch {uri}: HTTP {resp.status_code}")
                raw = self._read_body(resp)
                text = _decode(raw, resp.encoding)
                content_type = resp.headers.get("content-type", "text/plain").split(";")[0].strip()
                metadata = {"status_code": resp.status_code, "final_url": resp.url}
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch {uri}: {e}") from e

        if content_type in _HTML_TYPES:
            text = extract_html_text(text)
        return Document(uri=uri, content=text, content_type=content_type, metadata=metadata)


get_registry().register_document("http", HttpDocumentProvider)
