"""SSRF-safe HTTP fetcher with redirect, size and time limits.

:func:`fetch_page` never raises for network problems; every outcome is a
:class:`~readvault.snapshot.models.FetchResult` or a
:class:`~readvault.snapshot.models.FetchFailure` carrying a
:class:`~readvault.snapshot.models.BlockedReason`.
"""

from __future__ import annotations

import logging
import re
import socket
import time
from typing import Iterable, Mapping, Optional
from urllib.parse import urljoin

import httpcore
import httpx

from readvault.config import settings
from readvault.snapshot.models import BlockedReason, FetchFailure, FetchOutcome, FetchResult
from readvault.snapshot.safety import UnsafeAddressError, check_url, resolve_public_address

log = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

_ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# Dropped when a buffered body is re-wrapped; the bytes are already decoded.
_BODY_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})

_META_TAG_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_ROBOTS_NAME_RE = re.compile(r"""name\s*=\s*["']?robots["'\s/>]""", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Guarded transport
# ---------------------------------------------------------------------------

class _PinnedBackend(httpcore.SyncBackend):
    """Resolve once, validate, and dial the validated address.

    httpcore still hands the original hostname to ``start_tls`` so SNI and
    certificate verification are unaffected by dialling an IP.
    """

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable] = None,
    ) -> httpcore.NetworkStream:
        try:
            address = resolve_public_address(host, port)
        except socket.gaierror as exc:
            raise httpcore.ConnectError(f"DNS resolution failed for {host!r}: {exc}") from exc
        log.debug("Connecting to %s:%d via %s", host, port, address)
        return super().connect_tcp(
            address,
            port,
            timeout=timeout,
            local_address=local_address,
            socket_options=socket_options,
        )


class BlockedRequestError(httpx.RequestError):
    """A redirect hop (or first request) targeted a URL that fails :func:`check_url`."""


class ResponseTooLargeError(httpx.HTTPError):
    """A buffered response body exceeded ``settings.max_content_size``."""


def _vet_request(request: httpx.Request) -> None:
    verdict = check_url(str(request.url))
    if not verdict.safe:
        log.warning("Blocked request to %s: %s", request.url, verdict.message)
        raise BlockedRequestError(f"Blocked URL {request.url}: {verdict.message}", request=request)


class GuardedTransport(httpx.HTTPTransport):
    """``HTTPTransport`` whose connections only reach public addresses."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        # HTTPTransport has no public hook for the network backend.
        self._pool._network_backend = _PinnedBackend()


def build_client(
    timeout: float,
    follow_redirects: bool = False,
    headers: Optional[Mapping[str, str]] = None,
) -> httpx.Client:
    """Return an ``httpx.Client`` wired to the guarded transport.

    Environment proxies are ignored so every connection goes through the
    address check.  When the client follows redirects itself, every hop is
    re-validated with :func:`check_url` before it is sent.
    """
    transport = GuardedTransport() if settings.resolve_dns else httpx.HTTPTransport()
    return httpx.Client(
        transport=transport,
        headers={"User-Agent": settings.user_agent, **(headers or {})},
        timeout=timeout,
        follow_redirects=follow_redirects,
        event_hooks={"request": [_vet_request]} if follow_redirects else None,
        trust_env=False,
    )


def get_capped(client: httpx.Client, url: str, **kwargs) -> httpx.Response:
    """GET *url* and buffer at most ``settings.max_content_size`` bytes.

    Returns a fully-read response.  Raises :class:`ResponseTooLargeError`
    (an ``httpx.HTTPError``) once the body passes the limit.
    """
    limit = settings.max_content_size
    with client.stream("GET", url, **kwargs) as response:
        declared = _declared_length(response.headers)
        if declared is not None and declared > limit:
            raise ResponseTooLargeError(f"Content-Length: {declared}")
        chunks: list[bytes] = []
        total = 0
        for chunk in response.iter_bytes():
            total += len(chunk)
            if total > limit:
                raise ResponseTooLargeError(f"Response exceeded {limit} bytes")
            chunks.append(chunk)

    headers = [
        (key, value)
        for key, value in response.headers.multi_items()
        if key.lower() not in _BODY_HEADERS
    ]
    return httpx.Response(
        response.status_code,
        headers=headers,
        content=b"".join(chunks),
        request=response.request,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_html(content_type: str) -> bool:
    lowered = content_type.lower()
    return any(allowed in lowered for allowed in ALLOWED_CONTENT_TYPES)


def _declared_length(headers: httpx.Headers) -> Optional[int]:
    raw = headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _decode(body: bytes, encoding: Optional[str]) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def check_noarchive(headers: Mapping[str, str], html: str) -> bool:
    """Return ``True`` if the response forbids archiving.

    Checks the ``X-Robots-Tag`` header and any ``<meta name="robots">`` tag in
    the raw markup.  The readability extractor repeats the meta check on the
    parsed DOM.
    """
    robots_header = headers.get("x-robots-tag", "")
    if "noarchive" in robots_header.lower():
        return True
    for tag in _META_TAG_RE.findall(html):
        if _ROBOTS_NAME_RE.search(tag) and "noarchive" in tag.lower():
            return True
    return False


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def fetch_page(url: str) -> FetchOutcome:
    """Fetch *url* as HTML under the configured safety limits.

    Redirects are followed by hand, up to ``settings.max_redirects`` hops, and
    every ``Location`` is re-validated before it is requested.  The timeout is
    a wall-clock deadline covering all hops and the body stream.
    """
    verdict = check_url(url)
    if not verdict.safe:
        return FetchFailure(verdict.reason, verdict.message or "URL rejected")

    deadline = time.monotonic() + settings.fetch_timeout
    current = url

    try:
        with build_client(timeout=settings.fetch_timeout) as client:
            for hop in range(settings.max_redirects + 1):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                log.debug("GET %s (hop %d)", current, hop)
                with client.stream(
                    "GET",
                    current,
                    headers={"Accept": _ACCEPT_HTML, "Accept-Language": "en-US,en;q=0.5"},
                    timeout=remaining,
                ) as response:
                    status = response.status_code

                    if 300 <= status < 400:
                        location = response.headers.get("location")
                        if not location:
                            return FetchFailure(
                                BlockedReason.FETCH_ERROR, "Redirect without Location header"
                            )
                        target = urljoin(current, location)
                        hop_verdict = check_url(target)
                        if not hop_verdict.safe:
                            log.warning("Redirect from %s to blocked URL %s", current, target)
                            return FetchFailure(
                                hop_verdict.reason,
                                f"Redirect to blocked URL: {hop_verdict.message}",
                            )
                        current = target
                        continue

                    return _read_terminal(response, current, deadline)

            if time.monotonic() >= deadline:
                return _timed_out()
            return FetchFailure(
                BlockedReason.FETCH_ERROR,
                f"Too many redirects ({settings.max_redirects})",
            )
    except UnsafeAddressError as exc:
        return FetchFailure(BlockedReason.SSRF_BLOCKED, str(exc))
    except httpx.TimeoutException:
        return _timed_out()
    except httpx.InvalidURL as exc:
        return FetchFailure(BlockedReason.INVALID_URL, str(exc))
    except UnicodeError as exc:
        return FetchFailure(BlockedReason.INVALID_URL, f"Invalid hostname: {exc}")
    except httpx.HTTPError as exc:
        return FetchFailure(BlockedReason.FETCH_ERROR, str(exc) or type(exc).__name__)


def _timed_out() -> FetchFailure:
    return FetchFailure(
        BlockedReason.TIMEOUT,
        f"Request timed out after {settings.fetch_timeout:g}s",
    )


def _read_terminal(response: httpx.Response, final_url: str, deadline: float) -> FetchOutcome:
    status = response.status_code
    if status in (401, 403):
        return FetchFailure(BlockedReason.FORBIDDEN, f"HTTP {status}")
    if not response.is_success:
        return FetchFailure(BlockedReason.FETCH_ERROR, f"HTTP {status}")

    content_type = response.headers.get("content-type", "")
    if not _is_html(content_type):
        return FetchFailure(BlockedReason.NOT_HTML, f"Content-Type: {content_type or '(missing)'}")

    limit = settings.max_content_size
    declared = _declared_length(response.headers)
    if declared is not None and declared > limit:
        return FetchFailure(BlockedReason.TOO_LARGE, f"Content-Length: {declared}")

    chunks: list[bytes] = []
    total = 0
    for chunk in response.iter_bytes():
        total += len(chunk)
        if total > limit:
            log.info("Aborting %s after %d bytes (limit %d)", final_url, total, limit)
            return FetchFailure(BlockedReason.TOO_LARGE, f"Response exceeded {limit} bytes")
        if time.monotonic() > deadline:
            return _timed_out()
        chunks.append(chunk)

    html = _decode(b"".join(chunks), response.charset_encoding)
    headers = {key.lower(): value for key, value in response.headers.items()}
    log.debug("Fetched %s: %d bytes, %s", final_url, total, content_type)
    return FetchResult(html=html, final_url=final_url, content_type=content_type, headers=headers)
