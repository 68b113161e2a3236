# Schedules document generation outside the request that triggered it
import asyncio
import logging
from typing import Dict

from loan_document_service.app.service.generation.worker import DocumentGenerationWorker

logger = logging.getLogger(__name__)


class GenerationQueue:
    """
    Runs `worker.run(batch_id)` as asyncio tasks, with at most one in-flight task per batch.

    The task is owned by the queue, not by the request handler that enqueued it.
    """

    def __init__(self, worker: DocumentGenerationWorker):
        self.worker = worker
        self._tasks: Dict[str, asyncio.Task] = {}

    def in_flight(self, batch_id: str) -> bool:
        task = self._tasks.get(batch_id)
        return task is not None and not task.done()

    def enqueue(self, batch_id: str) -> bool:
        """Returns False when generation for this batch is already running."""
        if self.in_flight(batch_id):
            logger.warning(f"Generation already in flight for batch {batch_id}; not enqueuing again.")
            return False
        task = asyncio.create_task(self._run(batch_id), name=f"generate-{batch_id}")
        self._tasks[batch_id] = task
        logger.info(f"Generation enqueued for batch {batch_id}.")
        return True

    async def _run(self, batch_id: str) -> None:
        try:
            await self.worker.run(batch_id)
        except asyncio.CancelledError:
            logger.warning(f"Generation for batch {batch_id} was cancelled.")
            raise
        except Exception as e:
            # The worker records its own failures; this only catches errors outside its guard.
            logger.error(f"Unhandled error generating documents for batch {batch_id}: {e}", exc_info=True)
        finally:
            if self._tasks.get(batch_id) is asyncio.current_task():
                del self._tasks[batch_id]

    async def drain(self) -> None:
        """Waits until every queued generation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} generation task(s) before shutdown...")
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Generation tasks did not finish in time; cancelling.")
            stragglers = list(self._tasks.values())
            for task in stragglers:
                task.cancel()
            await asyncio.gather(*stragglers, return_exceptions=True)
            self._tasks.clear()
