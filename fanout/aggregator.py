from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import httpx

from .models import Dependency

logger = logging.getLogger("fanout.aggregator")

SECTION_RULE = "-------"

# Describe the inbound connection/body; never copied onto a dependency call.
_REQUEST_FRAMING = frozenset({"host", "content-length", "transfer-encoding", "connection", "keep-alive"})

# The harness always writes its own body, so these never come from elsewhere.
_RESPONSE_FRAMING = frozenset(
    {
        "content-length",
        "content-type",
        "content-encoding",
        "transfer-encoding",
        "connection",
        "keep-alive",
        "date",
        "server",
    }
)

_METHOD_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class ConstructionError(Exception):
    """The outbound request for a dependency could not be built."""


def canonical_header_key(key: str) -> str:
    """x-request-id -> X-Request-Id"""
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def merge_headers(merged: list[tuple[str, str]], items: Iterable[tuple[str, str]], policy: str = "append") -> None:
    """Fold header items into `merged` in place.

    append: every value is kept, in arrival order.
    replace: a key present in `items` drops the values already in `merged`,
    so the last source wins per key.
    """
    incoming = [(canonical_header_key(k), v) for k, v in items if k.lower() not in _RESPONSE_FRAMING]
    if policy == "replace":
        keys = {k for k, _ in incoming}
        merged[:] = [(k, v) for k, v in merged if k not in keys]
    merged.extend(incoming)


@dataclass(frozen=True)
class InboundRequest:
    """Read-only view of the request that triggered a fan-out."""

    method: str
    uri: str
    host: str
    headers: tuple[tuple[str, str], ...] = ()

    def grouped_headers(self) -> list[tuple[str, list[str]]]:
        groups: dict[str, list[str]] = {}
        for k, v in self.headers:
            groups.setdefault(canonical_header_key(k), []).append(v)
        return list(groups.items())


@dataclass
class VerboseReport:
    sections: list[str] = field(default_factory=list)  # one per dependency
    headers: list[tuple[str, str]] = field(default_factory=list)  # merged dependency response headers


def _indent(body: str) -> str:
    return "\t" + body.replace("\n", "\n\t") + "\n"


def _describe(exc: Exception) -> str:
    msg = str(exc)
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


class FanOut:
    """Replays an inbound request against every configured dependency.

    Calls are strictly sequential and in configured order. Each fan-out uses
    its own client; bodies are read in full with no size limit.
    """

    def __init__(
        self,
        dependencies: Sequence[Dependency],
        timeout_s: float = 10.0,
        header_merge: str = "append",
        transport: httpx.BaseTransport | None = None,
    ):
        self.dependencies = tuple(dependencies)
        self.timeout_s = timeout_s
        self.header_merge = header_merge
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_s, transport=self.transport, follow_redirects=True)

    def build_request(self, client: httpx.Client, dep: Dependency, inbound: InboundRequest) -> httpx.Request:
        method = dep.method or "GET"
        if not _METHOD_TOKEN.match(method):
            raise ConstructionError(f"invalid method {method!r}")

        # Repeated keys are sent as repeated header lines.
        headers = [(k, v) for k, v in inbound.headers if k.lower() not in _REQUEST_FRAMING]
        if dep.host:
            headers.append(("Host", dep.host))

        try:
            raw = [(k.encode("latin-1"), v.encode("latin-1")) for k, v in headers]
            return client.build_request(method, dep.path, headers=raw)
        except (httpx.InvalidURL, ValueError) as e:
            raise ConstructionError(f"cannot build request for {dep.path!r}: {e}") from e

    def verbose(self, inbound: InboundRequest) -> VerboseReport:
        """Call every dependency and render one report section per entry.

        Failures are rendered inline and never stop the iteration.
        """
        report = VerboseReport()
        with self._client() as client:
            for dep in self.dependencies:
                try:
                    req = self.build_request(client, dep, inbound)
                except ConstructionError as e:
                    logger.warning("Dependency %s %s could not be built: %s", dep.method, dep.path, e)
                    report.sections.append(f"Dependency: {dep.path} Error: {e}\n")
                    continue

                target = req.headers.get("host", "")
                try:
                    resp = client.send(req)
                except httpx.RequestError as e:
                    logger.warning("Dependency %s %s failed: %s", req.method, req.url, _describe(e))
                    report.sections.append(f"Dependency: {target} Error: {_describe(e)}\n")
                    continue

                report.sections.append(
                    f"Dependency: {target} Status: {resp.status_code}\n"
                    f"{SECTION_RULE}\n"
                    f"{_indent(resp.text)}"
                    f"{SECTION_RULE}\n"
                )
                # Raw bytes as latin-1, so any value the dependency sent can be written back unchanged.
                raw = [(k.decode("latin-1"), v.decode("latin-1")) for k, v in resp.headers.raw]
                merge_headers(report.headers, raw, self.header_merge)
        return report

    def status_only(self, inbound: InboundRequest) -> int:
        """Call dependencies in order and synthesize one status code.

        200 unless a dependency answers otherwise (the first non-200 wins).
        Any construction or transport failure yields 500 and skips the
        remaining dependencies.
        """
        status = 200
        with self._client() as client:
            for i, dep in enumerate(self.dependencies):
                try:
                    req = self.build_request(client, dep, inbound)
                except ConstructionError as e:
                    logger.warning(
                        "Dependency #%d %s %s could not be built: %s; skipping %d remaining",
                        i, dep.method, dep.path, e, len(self.dependencies) - i - 1,
                    )
                    return 500
                try:
                    resp = client.send(req)
                except httpx.RequestError as e:
                    logger.warning(
                        "Dependency #%d %s %s failed: %s; skipping %d remaining",
                        i, req.method, req.url, _describe(e), len(self.dependencies) - i - 1,
                    )
                    return 500
                if status == 200 and resp.status_code != 200:
                    status = resp.status_code
        return status
