"""
One-shot delayed jobs on the running asyncio loop.

Jobs live in a min-heap ordered by their due time on the loop clock. A single
runner task sleeps until the head of the heap is due (or until it is woken by
a new or cancelled job), pops it, and starts its callback in its own task.
Handles are plain integers that are never reused.
"""
import asyncio
import heapq
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Tuple

from fabricbot.util.logger import get_logger

logger = get_logger("delay_scheduler")

JobCallback = Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class ScheduledJob:
    """
    A pending job owned by the scheduler.

    Attributes:
        handle (int): Identifier returned to the caller for cancellation.
        run_at (float): Due time on the event loop clock.
        callback (JobCallback): Coroutine function invoked when the job fires.
        args (tuple): Positional arguments passed to ``callback``.
    """
    handle: int
    run_at: float
    callback: JobCallback
    args: Tuple[Any, ...] = ()


class DelayScheduler:
    """
    Shared timer facility for delayed callbacks.

    A job is removed from the pending set under the condition lock before its
    callback starts, so a job that has begun running can no longer be
    cancelled and can never fire twice. Cancelled jobs are dropped from the
    lookup table immediately and their heap entries are discarded lazily by
    the runner.

    Attributes:
        heap (list): Min-heap of (run_at, handle) tuples.
        jobs (Dict[int, ScheduledJob]): Pending jobs keyed by handle.
        counter (int): Last handle that was issued.
        runner_task (asyncio.Task | None): Background task processing the heap.
        condition (asyncio.Condition): Guards all of the above and wakes the runner.
    """

    def __init__(self, name: str = "delay-scheduler") -> None:
        self.name = name
        self.heap: list[tuple[float, int]] = []
        self.jobs: Dict[int, ScheduledJob] = {}
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()
        self._running: set[asyncio.Task[Any]] = set()

    @property
    def pending_count(self) -> int:
        return len(self.jobs)

    def is_pending(self, handle: int) -> bool:
        return handle in self.jobs

    def ensure_runner(self) -> None:
        """Create the background runner task if it's not already active."""
        if self.runner_task is None or self.runner_task.done():
            loop = asyncio.get_running_loop()
            self.runner_task = loop.create_task(self.run(), name=f"fabricbot-{self.name}")

    async def schedule(self, delay_seconds: float, callback: JobCallback, *args: Any) -> int:
        """
        Register ``callback(*args)`` to run once after ``delay_seconds``.

        Negative delays are clamped to zero, which makes the job due on the
        runner's next pass rather than raising.

        Args:
            delay_seconds (float): Delay measured from now.
            callback (JobCallback): Coroutine function to invoke.
            *args: Positional arguments for ``callback``.

        Returns:
            int: Handle that can be passed to :meth:`cancel`.
        """
        loop = asyncio.get_running_loop()
        run_at = loop.time() + max(0.0, float(delay_seconds))

        async with self.condition:
            self.ensure_runner()
            self.counter += 1
            handle = self.counter
            self.jobs[handle] = ScheduledJob(handle=handle, run_at=run_at, callback=callback, args=args)
            heapq.heappush(self.heap, (run_at, handle))
            self.condition.notify_all()

        logger.debug("[DELAY SCHEDULER] Scheduled job %d in %.3fs", handle, max(0.0, float(delay_seconds)))
        return handle

    async def cancel(self, handle: int) -> bool:
        """
        Cancel a pending job.

        Returns:
            bool: True if the job was pending and is now cancelled, False if it
            already fired, is running, or was never issued.
        """
        async with self.condition:
            job = self.jobs.pop(handle, None)
            if job is None:
                return False
            self.condition.notify_all()

        logger.debug("[DELAY SCHEDULER] Cancelled job %d", handle)
        return True

    async def cancel_all(self) -> int:
        """
        Drop every pending job. Callbacks already running are not interrupted.

        Returns:
            int: Number of jobs that were cancelled.
        """
        async with self.condition:
            count = len(self.jobs)
            self.jobs.clear()
            self.heap.clear()
            self.condition.notify_all()

        logger.debug("[DELAY SCHEDULER] Cancelled all %d pending jobs", count)
        return count

    async def shutdown(self) -> None:
        """
        Stop the runner, cancel in-flight callbacks, and clear all state.

        Safe to call multiple times.
        """
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.jobs.clear()
            self.condition.notify_all()

        running = list(self._running)
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    async def run(self) -> None:
        """
        Main background loop: wait for the earliest job to come due and start it.

        Runs until the scheduler is shut down.
        """
        loop = asyncio.get_running_loop()
        while True:
            async with self.condition:
                while self.heap and self.heap[0][1] not in self.jobs:
                    heapq.heappop(self.heap)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, handle = self.heap[0]
                delay = run_at - loop.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                heapq.heappop(self.heap)
                job = self.jobs.pop(handle)

            self._start(job)

    def _start(self, job: ScheduledJob) -> None:
        task = asyncio.create_task(self._execute(job), name=f"fabricbot-{self.name}-job-{job.handle}")
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _execute(self, job: ScheduledJob) -> None:
        try:
            await job.callback(*job.args)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[DELAY SCHEDULER] Job %d raised an exception", job.handle)
