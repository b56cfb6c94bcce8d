"""OTLP Sum counters for hook activity.

Each call is a single delta data point; the collector's
deltatocumulative processor turns the stream into Prometheus counters.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

from shepherd.constants import (
    METRICS_SERVICE_NAME,
    NANOS_PER_SECOND,
    OTLP_AGGREGATION_DELTA,
    OTLP_METRICS_PATH,
)
from shepherd.tracing.exporter import DetachedTransport, Transport, encode

logger = logging.getLogger(__name__)


def build_metric_payload(
    name: str,
    value: float,
    labels: Mapping[str, str],
    time_ns: int,
) -> dict[str, Any]:
    """ExportMetricsServiceRequest carrying one monotonic delta point."""
    return {
        "resourceMetrics": [
            {
                "resource": {
                    "attributes": [
                        {
                            "key": "service.name",
                            "value": {"stringValue": METRICS_SERVICE_NAME},
                        }
                    ]
                },
                "scopeMetrics": [
                    {
                        "scope": {"name": METRICS_SERVICE_NAME},
                        "metrics": [
                            {
                                "name": name,
                                "sum": {
                                    "dataPoints": [
                                        {
                                            "asDouble": float(value),
                                            "timeUnixNano": str(time_ns),
                                            "attributes": [
                                                {
                                                    "key": k,
                                                    "value": {"stringValue": str(v)},
                                                }
                                                for k, v in labels.items()
                                            ],
                                        }
                                    ],
                                    "aggregationTemporality": OTLP_AGGREGATION_DELTA,
                                    "isMonotonic": True,
                                },
                            }
                        ],
                    }
                ],
            }
        ]
    }


def emit_counter(
    name: str,
    value: float,
    labels: Mapping[str, str],
    transport: Transport | None = None,
) -> None:
    """Best-effort counter increment; failures are logged, never raised."""
    sender = transport if transport is not None else DetachedTransport()
    now_ns = int(time.time()) * NANOS_PER_SECOND
    try:
        sender.send(
            OTLP_METRICS_PATH,
            encode(build_metric_payload(name, value, labels, now_ns)),
        )
    except Exception:
        logger.debug(
            "event=metric_emit_failed metric=%s transport=%s",
            name,
            sender.name,
            exc_info=True,
        )
