"""
Batch screening over a bounded worker pool.

One image per task, at most max_workers tasks in flight. Cancelling stops
scheduling new images; in-flight images finish (or time out) and their
results are kept.
"""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from pathlib import Path

from skinscreen.core.errors import ImageDecodeError
from skinscreen.core.models import BatchReport, ImageAnalysis
from skinscreen.core.pipeline import ScreeningPipeline

logger = logging.getLogger(__name__)

# A path on disk, or an in-memory (name, bytes) pair
BatchItem = str | Path | tuple[str, bytes]


def item_name(item: BatchItem) -> str:
    if isinstance(item, tuple):
        return item[0]
    return Path(item).name


class BatchRunner:
    """Screen a finite set of images concurrently."""

    def __init__(
        self,
        pipeline: ScreeningPipeline,
        max_workers: int | None = None,
        timeout: float | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
    ):
        self.pipeline = pipeline
        self.max_workers = max_workers or pipeline.config.max_workers
        self.timeout = timeout if timeout is not None else pipeline.config.timeout_seconds
        self.progress_callback = progress_callback
        self._cancel = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop scheduling new images. Safe to call from any thread."""
        if not self._cancel.is_set():
            logger.info("Batch cancellation requested")
        self._cancel.set()

    def run(self, items: Sequence[BatchItem]) -> BatchReport:
        """
        Screen every item.

        Args:
            items: Image paths or (name, bytes) pairs

        Returns:
            BatchReport with results in input order
        """
        self._cancel.clear()
        total = len(items)
        results: dict[int, ImageAnalysis] = {}
        pending = iter(enumerate(items))
        in_flight: dict[Future, int] = {}

        logger.info(f"Screening {total} images with {self.max_workers} workers")

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="batch") as pool:

            def submit_next() -> bool:
                if self._cancel.is_set():
                    return False
                try:
                    index, item = next(pending)
                except StopIteration:
                    return False
                in_flight[pool.submit(self._process, item)] = index
                return True

            for _ in range(self.max_workers):
                if not submit_next():
                    break

            while in_flight:
                try:
                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                except KeyboardInterrupt:
                    logger.warning("Interrupted, letting in-flight images finish")
                    self.cancel()
                    continue

                for future in done:
                    index = in_flight.pop(future)
                    results[index] = future.result()
                    if self.progress_callback:
                        self.progress_callback(len(results), total)
                    submit_next()

        skipped = [item_name(item) for _, item in pending]
        if skipped:
            logger.info(f"Batch cancelled, {len(skipped)} images not scheduled")

        return BatchReport.create(
            results=[results[i] for i in sorted(results)],
            skipped=skipped,
            cancelled=self.cancelled,
        )

    def _process(self, item: BatchItem) -> ImageAnalysis:
        name = item_name(item)
        if isinstance(item, tuple):
            return self.pipeline.analyze(item[1], name, timeout=self.timeout)

        start_time = time.time()
        try:
            data = Path(item).read_bytes()
        except OSError as e:
            result = self.pipeline.failure_record(
                name, ImageDecodeError(f"Cannot read {item}: {e}"), start_time
            )
        else:
            result = self.pipeline.analyze(data, name, timeout=self.timeout)
        return replace(result, source=str(item))
