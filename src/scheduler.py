#!/usr/bin/env python3
import logging
import time
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass
class PeriodicTask:
    name: str
    interval_seconds: float
    func: Callable[[], object]
    next_run: float = 0.0
    runs: int = 0
    failures: int = 0


class Scheduler:
    """Fixed-interval task runner on a single thread.

    Every task runs once as soon as the loop starts, then every
    `interval_seconds`. Tasks run one after another, never concurrently, so
    they can share the pipeline state without locking. A task that falls behind
    is not replayed; its next run is pushed to one interval from now.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        self.clock = clock
        self.sleep = sleep
        self.tasks: List[PeriodicTask] = []
        self.running = False
        self._stop_requested = False

    def add_task(self, name: str, interval_seconds: float, func: Callable[[], object]) -> PeriodicTask:
        if interval_seconds <= 0:
            raise ValueError(f"Interval for {name} must be positive")
        task = PeriodicTask(name=name, interval_seconds=interval_seconds, func=func, next_run=self.clock())
        self.tasks.append(task)
        return task

    def _run_task(self, task: PeriodicTask) -> None:
        task.runs += 1
        try:
            task.func()
        except Exception as exc:
            task.failures += 1
            logger.exception(f"Task {task.name} failed: {exc}")

    def run_pending(self) -> List[str]:
        """Run every task that is due; returns the names that ran"""
        ran = []
        for task in self.tasks:
            if self._stop_requested:
                break
            now = self.clock()
            if now < task.next_run:
                continue
            self._run_task(task)
            ran.append(task.name)
            task.next_run += task.interval_seconds
            if task.next_run <= self.clock():
                task.next_run = self.clock() + task.interval_seconds
        return ran

    def seconds_until_next(self) -> float:
        if not self.tasks:
            return 1.0
        return max(0.0, min(task.next_run for task in self.tasks) - self.clock())

    def run_forever(self) -> None:
        if self._stop_requested:
            return
        self.running = True
        for task in self.tasks:
            logger.info(f"⏲ Scheduled {task.name} every {task.interval_seconds}s")

        while self.running:
            self.run_pending()
            # sleep in short steps so a stop request is honoured quickly
            while self.running and self.seconds_until_next() > 0:
                self.sleep(min(1.0, self.seconds_until_next()))

        logger.info("Scheduler stopped")

    def run_once(self) -> None:
        for task in self.tasks:
            self._run_task(task)

    def stop(self) -> None:
        self.running = False
        self._stop_requested = True
