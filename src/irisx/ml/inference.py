"""Inference concurrency layer.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> PipelinePool(N) -> ONNX

The semaphore, the worker threads and the pipelines share the same size, so a
request that gets past the semaphore always finds an idle pipeline. Requests
beyond the limit queue with a 5s timeout, then get 503.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from irisx.config import Settings
    from irisx.ml.pipeline import PipelinePool, PipelineResult

logger = logging.getLogger(__name__)

SEMAPHORE_TIMEOUT_SECONDS: float = 5.0


class InferencePool:
    """Bounds concurrent pipeline runs and moves them off the event loop."""

    def __init__(self, settings: Settings, pipelines: PipelinePool) -> None:
        self._pipelines = pipelines
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="irisx-pipeline",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def analyze(self, image: NDArray[np.uint8], with_iris: bool = True) -> PipelineResult:
        """Run ``image`` through a pipeline on the worker threads.

        Raises:
            TimeoutError: If no slot frees up within the timeout.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(
                self._semaphore.acquire(),
                timeout=SEMAPHORE_TIMEOUT_SECONDS,
            )
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, self._pipelines.analyze, image, with_iris)
        finally:
            self._semaphore.release()
            with self._counter_lock:
                self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Number of pipeline runs in progress."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Stop the worker threads and release the pipelines."""
        self._executor.shutdown(wait=True)
        self._pipelines.close()
        logger.info("Inference pool shut down")
