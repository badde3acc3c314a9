"""Fire-and-forget telemetry for upload network attempts."""

import logging
import time
from typing import Callable, Optional

from .models import TelemetryRecord, UploadAction

logger = logging.getLogger(__name__)

TelemetrySink = Callable[[TelemetryRecord], None]


def log_sink(record: TelemetryRecord) -> None:
    """Default sink: write the record to the debug log."""
    logger.debug(
        f"[{record.action.value}] host={record.host or '-'} status={record.http_status} "
        f"latency={record.latency_us}us retry={record.retry_count} "
        f"request_id={record.request_id or '-'} error={record.error_message or '-'}"
    )


class TelemetryReporter:
    """Send one record per network attempt to a sink without ever failing."""

    def __init__(self, sink: Optional[TelemetrySink] = None) -> None:
        self.sink = sink or log_sink

    def report(self, record: TelemetryRecord) -> None:
        try:
            self.sink(record)
        except Exception as e:
            logger.warning(f"Telemetry sink error: {e}")

    def emit(
        self,
        action: UploadAction,
        started: float,
        *,
        space_name: str = "",
        http_status: int = 0,
        retry_count: int = 0,
        request_id: str = "",
        host: str = "",
        error_message: str = "",
    ) -> None:
        """Build a record whose latency runs from ``started`` (perf_counter) to now."""
        self.report(
            TelemetryRecord(
                space_name=space_name,
                latency_us=int((time.perf_counter() - started) * 1_000_000),
                http_status=http_status,
                retry_count=retry_count,
                request_id=request_id or "",
                action=action,
                host=host,
                error_message=error_message,
            )
        )
