from __future__ import annotations

import logging
import socket
import time
from typing import Callable, Sequence

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from .aggregator import FanOut, InboundRequest, VerboseReport, merge_headers
from .models import Dependency
from .settings import Settings

logger = logging.getLogger("fanout.app")

METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def inbound_from(request: Request) -> InboundRequest:
    uri = request.url.path
    if request.url.query:
        uri = f"{uri}?{request.url.query}"
    # Host is carried separately, as on the wire it is not a regular header.
    headers = tuple(
        (k.decode("latin-1"), v.decode("latin-1")) for k, v in request.headers.raw if k.lower() != b"host"
    )
    return InboundRequest(
        method=request.method,
        uri=uri,
        host=request.headers.get("host", ""),
        headers=headers,
    )


def render_verbose(welcome_message: str, inbound: InboundRequest, report: VerboseReport, hostname: str) -> str:
    parts = [f"{welcome_message}\n\n", "Headers:\n"]
    for key, values in inbound.grouped_headers():
        parts.append(f"{key}: [{' '.join(values)}]\n")
    parts.append("\n")
    parts.extend(report.sections)
    parts.append(f"Processed by {hostname}")
    return "".join(parts)


def create_app(
    settings: Settings,
    dependencies: Sequence[Dependency],
    *,
    transport: httpx.BaseTransport | None = None,
    sleep: Callable[[float], None] = time.sleep,
    hostname: str | None = None,
) -> FastAPI:
    """Build the harness application.

    The handler is a plain function so every request runs on its own worker
    thread; dependency calls inside one request stay sequential.
    """
    fanout = FanOut(
        dependencies,
        timeout_s=settings.dependency_timeout_s,
        header_merge=settings.header_merge,
        transport=transport,
    )
    hostname = hostname or socket.gethostname()

    app = FastAPI(title="Fan-out harness", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.fanout = fanout
    app.state.hostname = hostname

    def delay() -> None:
        sleep(settings.wait_ms / 1000.0)

    @app.api_route("/{path:path}", methods=METHODS, include_in_schema=False)
    def handle(request: Request) -> Response:
        inbound = inbound_from(request)
        logger.info("%s %s Host: %s", inbound.method, inbound.uri, inbound.host)

        if settings.mode == "status":
            status = fanout.status_only(inbound)
            delay()
            return Response(status_code=status)

        report = fanout.verbose(inbound)
        delay()

        resp = PlainTextResponse(render_verbose(settings.welcome_message, inbound, report, hostname))
        # Inbound headers are echoed back after the dependency headers.
        merged = list(report.headers)
        merge_headers(merged, inbound.headers, settings.header_merge)
        for k, v in merged:
            resp.headers.append(k, v)
        return resp

    return app
