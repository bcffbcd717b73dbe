from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from bookshelf.services.access_log import (
    AccessLogShipper,
    LogEntry,
    client_ip,
    route_template,
    routed_template,
)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Report every request to the access log shipper.

    The entry is stamped before the request is handled and queued once the
    response is ready, so the endpoint can fall back to the route the router
    actually picked.
    """

    def __init__(self, app: ASGIApp, shipper: AccessLogShipper, trust_proxy_headers: bool = True) -> None:
        super().__init__(app)
        self.shipper = shipper
        self.trust_proxy_headers = trust_proxy_headers

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        entry = LogEntry(
            endpoint=route_template(request),
            method=request.method,
            ip=client_ip(request, self.trust_proxy_headers),
        )
        try:
            return await call_next(request)
        finally:
            if not entry.endpoint:
                entry.endpoint = routed_template(request.scope)
            self.shipper.submit(entry)
