"""Upstream forwarding for requests under the proxy prefix.

One attempt per inbound request, no retries: the browser retries if it wants
to, so a POST is never replayed against the upstream behind its back.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from healthmate_edge.rewrite import rewrite_path
from healthmate_edge.schemas import ProxyErrorResponse, ProxyEvent, UpstreamTarget

logger = logging.getLogger(__name__)

ProxyObserver = Callable[[ProxyEvent], None]

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Status for a request whose client went away before the upstream answered.
# Nobody reads it; it only shows up in access logs.
CLIENT_CLOSED_REQUEST = 499


def log_proxy_event(event: ProxyEvent) -> None:
    """Default observer: write the event to the module logger."""
    if event.outcome == "forwarded":
        logger.info(f"[Proxy] {event.method} {event.path} -> {event.target}")
    elif event.outcome == "responded":
        logger.debug(
            f"[Proxy] {event.method} {event.path} <- {event.status_code} "
            f"({event.elapsed_ms:.0f} ms)"
        )
    elif event.outcome == "abandoned":
        logger.info(f"[Proxy] {event.method} {event.path} abandoned: client disconnected")
    else:
        logger.error(
            f"[Proxy] {event.method} {event.path} -> {event.target} failed: {event.message}"
        )


def filter_request_headers(headers) -> list:
    """Inbound headers minus host, content-length and hop-by-hop headers.

    Kept as ordered pairs so repeated headers reach the upstream unchanged.
    """
    skip = HOP_BY_HOP_HEADERS | {"host", "content-length"}
    return [(name, value) for name, value in headers.items() if name.lower() not in skip]


def filter_response_headers(headers: httpx.Headers, buffered: bool = False) -> list:
    skip = HOP_BY_HOP_HEADERS
    if buffered:
        # httpx already decoded the body, so the upstream's framing no longer applies
        skip = skip | {"content-encoding", "content-length"}
    return [
        (name, value)
        for name, value in headers.multi_items()
        if name.lower() not in skip
    ]


def error_response(status_code: int, message: str) -> JSONResponse:
    body = ProxyErrorResponse(message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _wait_for_disconnect(request: Request) -> None:
    """Return once the client has gone away. Only call after the body is read."""
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except (asyncio.CancelledError, httpx.HTTPError):
        pass


class ProxyForwarder:
    """Sends requests to the fixed upstream and relays the answer back.

    ``target.timeout`` bounds the whole call, from sending the request to the
    last body byte, not just each network read.
    """

    def __init__(
        self,
        target: UpstreamTarget,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        observer: Optional[ProxyObserver] = None,
    ):
        self.target = target
        self.observer = observer or log_proxy_event
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(target.timeout),
            verify=target.verify_tls,
            follow_redirects=False,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def upstream_url(self, path: str, query: str = "") -> str:
        url = self.target.base_url + rewrite_path(path, self.target.rule)
        if query:
            url += "?" + query
        return url

    def _notify(self, **fields) -> None:
        try:
            self.observer(ProxyEvent(**fields))
        except Exception:
            logger.exception("Proxy observer raised; ignoring")

    async def forward(self, request: Request) -> Response:
        method = request.method
        path = request.url.path
        target_url = self.upstream_url(path, request.url.query)

        body = await request.body()
        upstream_request = self.client.build_request(
            method,
            target_url,
            headers=filter_request_headers(request.headers),
            content=body,
        )

        self._notify(method=method, path=path, target=target_url, outcome="forwarded")
        started = time.monotonic()
        deadline = started + self.target.timeout

        send_task = asyncio.create_task(self.client.send(upstream_request, stream=True))
        disconnect_task = asyncio.create_task(_wait_for_disconnect(request))
        try:
            await asyncio.wait(
                {send_task, disconnect_task},
                timeout=self.target.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            send_task.cancel()
            disconnect_task.cancel()
            raise
        client_gone = disconnect_task.done()
        disconnect_task.cancel()

        elapsed_ms = (time.monotonic() - started) * 1000
        if not send_task.done():
            # Cancelling the send releases the upstream connection
            await _cancel(send_task)
            if client_gone:
                self._notify(method=method, path=path, target=target_url, outcome="abandoned")
                return Response(status_code=CLIENT_CLOSED_REQUEST)
            return self._failure(
                502,
                f"Upstream did not respond within {self.target.timeout:g} seconds",
                method, path, target_url, elapsed_ms,
            )

        try:
            upstream = send_task.result()
        except httpx.TransportError as e:
            return self._failure(502, str(e) or e.__class__.__name__, method, path, target_url, elapsed_ms)
        except httpx.HTTPError as e:
            return self._failure(500, str(e) or e.__class__.__name__, method, path, target_url, elapsed_ms)

        self._notify(
            method=method,
            path=path,
            target=target_url,
            outcome="responded",
            status_code=upstream.status_code,
            elapsed_ms=elapsed_ms,
        )

        buffered = upstream.is_stream_consumed
        response = StreamingResponse(
            self._relay_body(upstream, method, path, target_url, deadline),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        # Upstream headers replace the defaults StreamingResponse would add
        response.raw_headers = [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in filter_response_headers(upstream.headers, buffered)
        ]
        return response

    def _failure(self, status_code, message, method, path, target_url, elapsed_ms) -> JSONResponse:
        self._notify(
            method=method,
            path=path,
            target=target_url,
            outcome="failed",
            status_code=status_code,
            message=message,
            elapsed_ms=elapsed_ms,
        )
        return error_response(status_code, message)

    async def _relay_body(
        self,
        upstream: httpx.Response,
        method: str,
        path: str,
        target_url: str,
        deadline: float,
    ) -> AsyncIterator[bytes]:
        """Stream the upstream body verbatim until ``deadline``.

        By the time this runs the status line and headers are already on the
        wire, so a failure here cannot become a JSON error; it is reported and
        re-raised so the server drops the connection.
        """
        try:
            if upstream.is_stream_consumed:
                # Responses httpx has already loaded (e.g. built with content=)
                yield upstream.content
                return

            late = f"upstream body not finished within {self.target.timeout:g} seconds"
            chunks = upstream.aiter_raw().__aiter__()
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise httpx.ReadTimeout(late)
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    raise httpx.ReadTimeout(late)
                yield chunk
        except httpx.HTTPError as e:
            self._notify(
                method=method,
                path=path,
                target=target_url,
                outcome="failed",
                status_code=upstream.status_code,
                message=f"upstream body interrupted after headers were sent: {e}",
            )
            raise
        finally:
            await upstream.aclose()
