"""
Splitting of oversized bulk requests.

Search clusters reject request bodies above a fixed size. A bulk body larger
than the configured limit is cut into segments on record boundaries, each
segment is sent in order, and the per-segment responses are merged back into
one bulk response. Callers see a single request and a single response.

Record framing
--------------
- Records separated by a blank line (``\\n\\n``): each record ends right after
  the blank line; the last one ends at the end of the body.
- Plain NDJSON (what ``opensearch-py`` produces): a record is an action line
  followed by its source line, except ``delete`` actions which are one line.

Concatenating the segments of a body gives the body back, unless a single
record was larger than the limit on its own. Such records are dropped with a
warning: that document is not indexed.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any
from urllib.parse import urlencode, urlparse

import orjson
from opensearchpy import Urllib3HttpConnection
from opensearchpy.exceptions import TransportError
from pydantic import BaseModel, ConfigDict

from enhanced_search.signing import RequestSigner

logger = logging.getLogger(__name__)

DEFAULT_SIZE_LIMIT = 9_000_000
RECORD_SEPARATOR = b"\n\n"
WRITE_METHODS = ("POST", "PUT")

DoRequest = Callable[[str, str, dict[str, str], bytes | None, float | None], tuple[int, dict[str, str], Any]]


class BulkSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    body: bytes
    record_count: int


def is_bulk_request(method: str, url: str) -> bool:
    path = urlparse(url).path.rstrip("/")
    return method.upper() in WRITE_METHODS and (path == "/_bulk" or path.endswith("/_bulk") or path == "_bulk")


def _is_delete_action(line: bytes) -> bool:
    try:
        action = orjson.loads(line)
    except orjson.JSONDecodeError:
        return False
    return isinstance(action, dict) and "delete" in action


def _ndjson_records(body: bytes) -> Iterator[bytes]:
    lines = body.split(b"\n")
    pieces = [line + b"\n" for line in lines[:-1]]
    if lines[-1]:
        pieces.append(lines[-1])

    i = 0
    while i < len(pieces):
        span = 1 if _is_delete_action(pieces[i]) else 2
        yield b"".join(pieces[i : i + span])
        i += span


def iter_records(body: bytes) -> Iterator[bytes]:
    """Yield the records of a bulk body, each with its trailing separator."""
    if RECORD_SEPARATOR not in body:
        yield from _ndjson_records(body)
        return

    pos = 0
    while pos < len(body):
        idx = body.find(RECORD_SEPARATOR, pos)
        end = len(body) if idx == -1 else idx + len(RECORD_SEPARATOR)
        yield body[pos:end]
        pos = end


def split_bulk_body(body: bytes | str, size_limit: int = DEFAULT_SIZE_LIMIT) -> list[BulkSegment]:
    """Cut a bulk body into segments of at most ``size_limit`` bytes."""
    if isinstance(body, str):
        body = body.encode("utf-8")

    segments: list[BulkSegment] = []
    current = bytearray()
    count = 0
    for record in iter_records(body):
        if len(record) > size_limit:
            logger.warning(
                "Dropping bulk record of %d bytes, over the %d byte request limit: %r",
                len(record),
                size_limit,
                record[:200],
            )
            continue
        if count and len(current) + len(record) > size_limit:
            segments.append(BulkSegment(body=bytes(current), record_count=count))
            current = bytearray()
            count = 0
        current.extend(record)
        count += 1

    if count:
        segments.append(BulkSegment(body=bytes(current), record_count=count))
    return segments


def merge_bulk_responses(responses: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Combine per-segment bulk responses into one, keeping item order."""
    merged: dict[str, Any] = {"took": 0, "errors": False, "items": []}
    for response in responses:
        merged["took"] += int(response.get("took") or 0)
        merged["errors"] = merged["errors"] or bool(response.get("errors"))
        merged["items"].extend(response.get("items") or [])
    return merged


def _send_segment(
    do_request: DoRequest,
    method: str,
    url: str,
    headers: dict[str, str],
    segment: BulkSegment,
    timeout: float | None,
    sign: RequestSigner | None,
) -> tuple[int, dict[str, str], dict[str, Any]]:
    if sign is not None:
        headers = sign(method, url, headers, segment.body)
    status, response_headers, data = do_request(method, url, headers, segment.body, timeout)
    if not 200 <= status < 300:
        raise TransportError(status, "Bulk request rejected", data)
    try:
        return status, response_headers, orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        raise TransportError(status, "Invalid bulk response", data) from exc


def send_bulk(
    do_request: DoRequest,
    url: str,
    headers: dict[str, str] | None,
    body: bytes | str | None,
    size_limit: int = DEFAULT_SIZE_LIMIT,
    *,
    method: str = "POST",
    timeout: float | None = None,
    sign: RequestSigner | None = None,
) -> tuple[int, dict[str, str], Any]:
    """Send a bulk request, splitting it when it is over ``size_limit`` bytes.

    Args:
        do_request: Transport call ``(method, url, headers, body, timeout)``
            returning ``(status, headers, body)`` or raising ``TransportError``.
        url: Request URL or path.
        headers: Request headers.
        body: The bulk body.
        size_limit: Maximum request body size in bytes.
        method: HTTP method.
        timeout: Per-request timeout, applied to each segment.
        sign: Optional signer run on every outgoing request.

    Returns:
        ``(status, headers, body)``. For split requests the body is the merged
        bulk response as JSON bytes.

    Raises:
        TransportError: The first segment could not be sent. Failures of later
            segments are logged and their items left out of the response.
    """
    headers = dict(headers or {})
    if body is not None and not isinstance(body, bytes | str):
        body = bytes(body)
    if isinstance(body, str):
        body = body.encode("utf-8")

    if body is None or not is_bulk_request(method, url) or len(body) <= size_limit:
        if sign is not None:
            headers = sign(method, url, headers, body)
        return do_request(method, url, headers, body, timeout)

    segments = split_bulk_body(body, size_limit)
    logger.info("Splitting %d byte bulk request into %d requests", len(body), len(segments))

    first: tuple[int, dict[str, str]] | None = None
    responses = []
    for n, segment in enumerate(segments):
        try:
            status, response_headers, response = _send_segment(
                do_request, method, url, headers, segment, timeout, sign
            )
        except TransportError:
            if n == 0:
                raise
            logger.warning(
                "Bulk request %d/%d failed, %d records not indexed",
                n + 1,
                len(segments),
                segment.record_count,
                exc_info=True,
            )
            continue
        if first is None:
            first = (status, response_headers)
        responses.append(response)

    status, response_headers = first or (200, {})
    return status, response_headers, orjson.dumps(merge_bulk_responses(responses))


class BulkChunkingConnection(Urllib3HttpConnection):
    """``opensearch-py`` connection that splits oversized bulk bodies.

    Pass as ``connection_class`` to :class:`opensearchpy.OpenSearch`; the
    extra keyword arguments are forwarded by the client to each connection.
    """

    def __init__(
        self,
        *args: Any,
        bulk_size_limit: int = DEFAULT_SIZE_LIMIT,
        signer: RequestSigner | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.bulk_size_limit = bulk_size_limit
        self.signer = signer

    def _sign_for(self, params: dict[str, Any] | None) -> RequestSigner | None:
        if self.signer is None:
            return None

        def sign(method: str, url: str, headers: dict[str, str], body: bytes | None) -> dict[str, str]:
            full_url = f"{self.host}{self.url_prefix}{url}"
            if params:
                full_url = f"{full_url}?{urlencode(params)}"
            return self.signer(method, full_url, headers, body)

        return sign

    def perform_request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        body: bytes | None = None,
        timeout: float | None = None,
        ignore: Any = (),
        headers: dict[str, str] | None = None,
    ) -> Any:
        def do_request(
            method: str,
            url: str,
            headers: dict[str, str],
            body: bytes | None,
            timeout: float | None,
        ) -> Any:
            return super(BulkChunkingConnection, self).perform_request(
                method, url, params, body, timeout=timeout, ignore=ignore, headers=headers
            )

        return send_bulk(
            do_request,
            url,
            headers,
            body,
            self.bulk_size_limit,
            method=method,
            timeout=timeout,
            sign=self._sign_for(params),
        )
