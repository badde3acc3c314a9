"""Retry helpers and host failover for data-plane transfers.

Two tiers: part uploads retry any error a fixed
number of times, while whole transfer attempts only retry server-class
failures and then move on to the next candidate host.
"""

import logging
import time
from typing import Callable, List, Optional, Tuple, TypeVar

from .exceptions import IntegrityError, TransferError, UploadFailedError
from .models import UploadTarget

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: Exception) -> bool:
    """Host-level predicate: server-class ``TransferError`` only."""
    return isinstance(exc, TransferError) and exc.retryable


def is_part_retryable(exc: Exception) -> bool:
    """Part-level predicate: everything except integrity failures."""
    return not isinstance(exc, IntegrityError)


def call_with_retry(
    description: str,
    func: Callable[[int], T],
    attempts: int = 3,
    retry_if: Optional[Callable[[Exception], bool]] = None,
    backoff: float = 0.1,
) -> T:
    """Call ``func(attempt)`` until it succeeds or ``attempts`` run out.

    The last error is re-raised. Errors rejected by ``retry_if`` are
    re-raised immediately. Waits ``backoff * 2 ** (attempt - 1)`` seconds
    between attempts.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func(attempt)
        except Exception as exc:
            if retry_if is not None and not retry_if(exc):
                raise
            logger.warning(f"{description}: attempt {attempt} failed: {exc}")
            if attempt == attempts:
                logger.error(f"{description}: exceeded max attempts ({attempts})")
                raise
            delay = backoff * 2 ** (attempt - 1)
            if delay > 0:
                logger.info(f"{description}: retrying in {delay:.2f}s...")
                time.sleep(delay)
    raise RuntimeError(f"{description}: no attempt made")


class HostFailover:
    """Try a transfer against each candidate target in order."""

    def __init__(self, attempts: int = 3, backoff: float = 0.1) -> None:
        self.attempts = attempts
        self.backoff = backoff

    def run(
        self,
        targets: List[UploadTarget],
        transfer: Callable[[UploadTarget, int], T],
    ) -> Tuple[UploadTarget, T]:
        """Run ``transfer(target, attempt)`` with per-host retries.

        Returns:
            The target that succeeded and the transfer's result

        Raises:
            TransferError: on the first non-retryable failure
            UploadFailedError: when every host has been exhausted
        """
        for index, target in enumerate(targets, start=1):
            description = f"host {index}/{len(targets)} ({target.host})"

            def attempt(retry_count: int, target: UploadTarget = target) -> T:
                logger.info(f"using {description}, try {retry_count}")
                return transfer(target, retry_count)

            try:
                return target, call_with_retry(
                    description,
                    attempt,
                    attempts=self.attempts,
                    retry_if=is_retryable,
                    backoff=self.backoff,
                )
            except TransferError as exc:
                if not exc.retryable:
                    raise
                logger.warning(f"{description}: retries exhausted, trying next host")
            except IntegrityError as exc:
                logger.warning(f"{description}: {exc}, trying next host")

        raise UploadFailedError("upload failed", phase="transfer")
