"""Concurrent multipart upload of a local file through the gateway."""

import logging
import os
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from .exceptions import UploadEngineError
from .models import MultipartSession, PartResult, PartSpec, UploadTarget
from .planner import plan_parts
from .retry import call_with_retry, is_part_retryable
from .transport import GatewayClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, float], None]


class MultipartUploader:
    """Upload a file as parts with a fixed-size worker pool, then merge.

    Workers drain a queue filled with every planned part before they
    start. The first worker whose part exhausts its retries sets the quit
    flag; the others finish the part they hold and stop. Nothing is
    merged unless every part succeeded.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        *,
        parallel_num: int = 1,
        part_retry_attempts: int = 3,
        retry_backoff: float = 0.1,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.gateway = gateway
        self.parallel_num = max(1, parallel_num or 1)
        self.part_retry_attempts = part_retry_attempts
        self.retry_backoff = retry_backoff
        self.progress_callback = progress_callback

        self.progress_lock = threading.Lock()
        self.bytes_completed = 0

    @staticmethod
    def human_mb_per_s(num_bytes: int, seconds: float) -> float:
        """Return MB/s as float, avoiding divide-by-zero."""
        return (num_bytes / (1024 * 1024)) / seconds if seconds > 0 else float("inf")

    def upload(
        self,
        file_path: str,
        target: UploadTarget,
        chunk_size: int,
        parts: Optional[List[PartSpec]] = None,
        retry_count: int = 0,
    ) -> MultipartSession:
        """Run init, concurrent part uploads and merge for one target.

        Args:
            file_path: Local file to upload
            target: Upload destination (host, object id, auth)
            chunk_size: Nominal part size in bytes
            parts: Precomputed part plan (planned from the file size if None)
            retry_count: Outer attempt number, reported with every request

        Returns:
            The merged multipart session
        """
        file_size = os.path.getsize(file_path)
        if parts is None:
            parts = plan_parts(file_size, chunk_size)
        logger.info(
            f"File size: {file_size} bytes; will upload in {len(parts)} parts "
            f"with {self.parallel_num} workers via {target.host}"
        )

        start_time = time.time()
        upload_id = self.gateway.init_multipart(target, retry_count)
        logger.info(f"Initiated multipart upload: UploadId={upload_id}")
        session = MultipartSession(upload_id=upload_id, target=target, parts=parts)

        results = self.upload_parts(file_path, session, file_size, retry_count)

        # Part 1's content type is only read once every worker has finished.
        content_type = next(
            (r.content_type_hint for r in results if r.number == 1), None
        )
        logger.info(f"Merging {len(results)} parts of UploadId={upload_id}")
        self.gateway.complete_multipart(target, upload_id, results, content_type, retry_count)

        elapsed = time.time() - start_time
        speed = self.human_mb_per_s(file_size, elapsed)
        duration = time.strftime("%Hh %Mm %Ss", time.gmtime(elapsed))
        logger.info(f"Upload Speed {speed:.2f} MB/s, Duration {duration}")
        return session

    def upload_parts(
        self,
        file_path: str,
        session: MultipartSession,
        file_size: int,
        retry_count: int = 0,
    ) -> List[PartResult]:
        """Upload every planned part of ``session``; results ordered by number."""
        jobs: "queue.Queue[PartSpec]" = queue.Queue(maxsize=len(session.parts))
        for part in session.parts:
            jobs.put(part)

        quit_event = threading.Event()
        results: List[PartResult] = []
        failures: List[Tuple[int, Exception]] = []
        results_lock = threading.Lock()
        self.bytes_completed = 0
        start_time = time.time()

        def worker() -> None:
            while not quit_event.is_set():
                try:
                    part = jobs.get_nowait()
                except queue.Empty:
                    return
                try:
                    result = self.upload_part(file_path, session, part)
                except Exception as exc:
                    with results_lock:
                        failures.append((part.number, exc))
                    quit_event.set()
                    return
                with results_lock:
                    results.append(result)
                self._report_progress(part, file_size, start_time)

        with ThreadPoolExecutor(max_workers=self.parallel_num) as executor:
            futures = [executor.submit(worker) for _ in range(self.parallel_num)]
        for future in futures:
            future.result()

        if failures:
            part_number, exc = failures[0]
            logger.error(
                f"Part {part_number} failed, abandoning UploadId={session.upload_id}: {exc}"
            )
            raise exc

        return sorted(results, key=lambda r: r.number)

    def upload_part(self, file_path: str, session: MultipartSession, part: PartSpec) -> PartResult:
        """Read one part's byte range and upload it with retries."""
        logger.debug(
            f"Part {part.number}: reading bytes {part.offset}-{part.offset + part.length}"
        )
        with open(file_path, "rb") as f:
            f.seek(part.offset)
            data = f.read(part.length)
        if len(data) != part.length:
            raise UploadEngineError(
                "read data error",
                {"part_number": part.number, "expected": part.length, "read": len(data)},
            )

        return call_with_retry(
            f"Part {part.number}",
            lambda attempt: self.gateway.upload_part(
                session.target, session.upload_id, part.number, data, attempt
            ),
            attempts=self.part_retry_attempts,
            retry_if=is_part_retryable,
            backoff=self.retry_backoff,
        )

    def _report_progress(self, part: PartSpec, file_size: int, start_time: float) -> None:
        with self.progress_lock:
            self.bytes_completed += part.length
            bytes_uploaded = self.bytes_completed
        elapsed = time.time() - start_time
        speed_mbps = (bytes_uploaded / (1024**2)) / elapsed if elapsed > 0 else 0
        logger.debug(
            f"Part {part.number}: uploaded, progress: "
            f"{100.0 * bytes_uploaded / file_size:.1f}%"
        )
        if self.progress_callback:
            try:
                self.progress_callback(bytes_uploaded, file_size, speed_mbps)
            except Exception as e:
                logger.warning(f"Progress callback error: {e}")
