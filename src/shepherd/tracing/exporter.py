"""OTLP/HTTP JSON export of one trace, fire-and-forget.

The hook that triggers export runs synchronously inside the AI CLI, so
nothing here may block it or fail it. The default transport hands the
serialized batch to a detached child process (new session, never
awaited) which POSTs it; any serialization or transport failure is
dropped. Trace delivery is best-effort telemetry: no retries.

All spans of a trace travel in one request body, so the collector sees
either the whole hierarchy or nothing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import subprocess
import sys
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

import httpx

from shepherd import __version__
from shepherd.config import Settings
from shepherd.constants import (
    OTLP_SPAN_KIND_INTERNAL,
    OTLP_TRACES_PATH,
    SCOPE_NAME,
)
from shepherd.tracing.models import Span

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"[0-9]+")


class Transport(Protocol):
    """Delivers an OTLP JSON body to a collector path."""

    @property
    def name(self) -> str: ...

    def send(self, path: str, body: bytes) -> None: ...


class HttpTransport:
    """POST via httpx. Used inside the detached sender.

    ``http_transport`` lets tests substitute ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        cfg = settings if settings is not None else Settings()
        self._base_url = cfg.otel_http_url
        self._timeout = cfg.export_timeout_seconds
        self._http_transport = http_transport

    @property
    def name(self) -> str:
        return "http"

    def send(self, path: str, body: bytes) -> None:
        asyncio.run(self.post(path, body))

    async def post(self, path: str, body: bytes) -> int:
        """POST ``body`` to ``<otel_http_url><path>``; returns the status."""
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._http_transport
        ) as client:
            response = await client.post(
                f"{self._base_url}{path}",
                content=body,
                headers={"Content-Type": "application/json"},
            )
        logger.debug(
            "event=otlp_posted path=%s status=%d bytes=%d",
            path,
            response.status_code,
            len(body),
        )
        return response.status_code


def spawn_detached(args: list[str]) -> None:
    """Start ``python -m shepherd.cli <args>`` in its own session, unawaited.

    The child outlives the calling hook; its stdio is discarded.
    """
    subprocess.Popen(  # noqa: S603
        [sys.executable, "-m", "shepherd.cli", *args],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


class DetachedTransport:
    """Spawns ``python -m shepherd.cli send`` and walks away.

    The body goes through a temp file (the child deletes it) so the
    parent never blocks on a pipe; the child runs in its own session so
    the CLI can exit while the POST is still in flight.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        cfg = settings if settings is not None else Settings()
        self._endpoint = cfg.otel_http_url

    @property
    def name(self) -> str:
        return "detached"

    def send(self, path: str, body: bytes) -> None:
        with tempfile.NamedTemporaryFile(
            prefix="shepherd-", suffix=".json", delete=False
        ) as fh:
            fh.write(body)
        try:
            spawn_detached(
                [
                    "send",
                    "--endpoint",
                    self._endpoint,
                    "--path",
                    path,
                    "--body-file",
                    fh.name,
                ]
            )
        except OSError:
            Path(fh.name).unlink(missing_ok=True)
            raise


def attribute_value(value: str) -> dict[str, str]:
    """Numeric-looking strings go out as ``intValue``."""
    if _INTEGER.fullmatch(value):
        return {"intValue": value}
    return {"stringValue": value}


def span_record(span: Span) -> dict[str, Any]:
    record: dict[str, Any] = {
        "traceId": span.trace_id,
        "spanId": span.span_id,
    }
    if span.parent_span_id:
        record["parentSpanId"] = span.parent_span_id
    record.update({
        "name": span.name,
        "kind": OTLP_SPAN_KIND_INTERNAL,
        "startTimeUnixNano": span.start_ns,
        "endTimeUnixNano": span.end_ns,
        "attributes": [
            {"key": k, "value": attribute_value(v)}
            for k, v in span.attributes.items()
        ],
        "status": {"code": int(span.status)},
    })
    return record


def build_payload(
    spans: Sequence[Span], service_name: str
) -> dict[str, Any]:
    """ExportTraceServiceRequest: one resource, one scope, all spans."""
    return {
        "resourceSpans": [
            {
                "resource": {
                    "attributes": [
                        {
                            "key": "service.name",
                            "value": {"stringValue": service_name},
                        }
                    ]
                },
                "scopeSpans": [
                    {
                        "scope": {"name": SCOPE_NAME, "version": __version__},
                        "spans": [span_record(s) for s in spans],
                    }
                ],
            }
        ]
    }


def encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def export_spans(
    spans: Sequence[Span],
    service_name: str,
    transport: Transport | None = None,
) -> bool:
    """Hand the trace to ``transport``. Returns whether it was handed off.

    Empty input is a no-op. Failures are logged at debug level and
    never raised.
    """
    if not spans:
        return False
    sender = transport if transport is not None else DetachedTransport()
    try:
        sender.send(OTLP_TRACES_PATH, encode(build_payload(spans, service_name)))
    except Exception:
        logger.debug(
            "event=trace_export_failed transport=%s spans=%d",
            sender.name,
            len(spans),
            exc_info=True,
        )
        return False
    logger.debug(
        "event=trace_exported transport=%s service=%s spans=%d",
        sender.name,
        service_name,
        len(spans),
    )
    return True
