"""Access log entries and the background shipper that forwards them to Graylog.

Requests only enqueue entries; a single worker task delivers them one at a
time. Delivery is best-effort: a full queue drops the entry, a failed send is
logged and counted, nothing is retried.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from fastapi import Request
from starlette.routing import Match

from bookshelf.services.gelf import GelfClient, GelfError, GelfMessage

logger = logging.getLogger(__name__)

SHORT_MESSAGE = "Endpoint accessed"
IPV6_LOOPBACK = "::1"
RFC3339_UTC = "%Y-%m-%dT%H:%M:%SZ"


@dataclass
class LogEntry:
    endpoint: str
    method: str
    ip: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        return (
            f"ID: {self.id} | Endpoint: {self.endpoint} | Method: {self.method} | "
            f"IP: {self.ip} | Timestamp: {self.timestamp.astimezone(UTC).strftime(RFC3339_UTC)}\n"
        )

    def to_gelf(self, source: str, level: int) -> GelfMessage:
        return GelfMessage(
            host=source,
            short_message=SHORT_MESSAGE,
            full_message=str(self),
            timestamp=int(self.timestamp.timestamp()),
            level=level,
            extra={"Endpoint": self.endpoint, "Method": self.method, "IP": self.ip},
        )


def _template_of(route) -> str | None:
    return getattr(route, "path_format", None) or getattr(route, "path", None)


def _nested_routes(route) -> list:
    routes = getattr(route, "routes", None)
    if routes is None:
        routes = getattr(getattr(route, "router", None), "routes", None)
    return list(routes or [])


def _match_template(routes, scope) -> str:
    for route in routes:
        if not hasattr(route, "matches"):
            continue
        match, child_scope = route.matches(scope)
        if match != Match.FULL:
            continue
        matched = child_scope.get("route", route)
        template = _template_of(matched)
        if template is not None:
            return template
        # Included routers wrap their own routes and may carry no path.
        nested = _nested_routes(matched)
        if nested:
            return _match_template(nested, {**scope, **child_scope})
        return ""
    return ""


def route_template(request: Request) -> str:
    """Return the path template of the route serving ``request``, or "" if none matches."""
    return _match_template(request.app.router.routes, request.scope)


def routed_template(scope) -> str:
    """Path template recorded in ``scope`` by the router once a route was chosen."""
    route = scope.get("route")
    if route is None:
        return ""
    return _template_of(route) or ""


def client_ip(request: Request, trust_proxy_headers: bool = True) -> str:
    ip = ""
    if trust_proxy_headers:
        ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if not ip:
            ip = request.headers.get("x-real-ip", "").strip()
    if not ip and request.client is not None:
        ip = request.client.host
    if ip == IPV6_LOOPBACK:
        return "localhost"
    return ip


class AccessLogShipper:
    def __init__(
        self,
        client: GelfClient | None,
        *,
        source: str = "localhost",
        level: int = 1,
        queue_size: int = 1000,
        required: bool = False,
    ) -> None:
        self.client = client
        self.source = source
        self.level = level
        self.required = required
        self._queue: asyncio.Queue[GelfMessage] = asyncio.Queue(maxsize=queue_size)
        self._worker: asyncio.Task | None = None
        self.sent = 0
        self.failed = 0
        self.dropped = 0

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Connect to the collector and start the delivery worker.

        An unreachable collector aborts startup only when ``required`` is set;
        otherwise shipping is disabled for the lifetime of the process.
        """
        if self.client is None:
            logger.info("Access log shipping disabled")
            return
        try:
            await self.client.connect()
        except GelfError as e:
            if self.required:
                raise
            logger.warning("Graylog collector unavailable, running without access log shipping: %s", e)
            await self.client.close()
            self.client = None
            return
        self._worker = asyncio.create_task(self._run(self.client), name="access-log-shipper")
        logger.info("Shipping access logs to %r", self.client)

    def submit(self, entry: LogEntry) -> bool:
        if self.client is None:
            return False
        try:
            self._queue.put_nowait(entry.to_gelf(self.source, self.level))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Access log queue full, dropped entry %s (%d dropped)", entry.id, self.dropped)
            return False
        return True

    async def _run(self, client: GelfClient) -> None:
        while True:
            message = await self._queue.get()
            try:
                await client.send(message)
                self.sent += 1
            except GelfError as e:
                self.failed += 1
                logger.error("Error sending log to Graylog: %s", e)
            except Exception:
                self.failed += 1
                logger.exception("Unexpected error sending log to Graylog")
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued entry has been handled by the worker."""
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        if self._worker is not None:
            try:
                await asyncio.wait_for(self.drain(), timeout)
            except TimeoutError:
                logger.warning(
                    "Access log queue not drained after %.1fs, discarding %d entries",
                    timeout,
                    self._queue.qsize(),
                )
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self.client is not None:
            await self.client.close()
        logger.info(
            "Access log shipper stopped: %d sent, %d failed, %d dropped",
            self.sent,
            self.failed,
            self.dropped,
        )
