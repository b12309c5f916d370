"""Supervised background work: a bounded job runner and per-session locks."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


class JobRunner:
    """Run pipeline jobs on a bounded thread pool.

    Every job is wrapped in a supervisor: failures are logged with the session
    id and handed to the optional ``on_error`` callback, so no submitted call
    ends unobserved.
    """

    def __init__(self, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="talknotes-job")
        self._futures: set[Future[Any]] = set()
        self._lock = threading.Lock()

    def submit(
        self,
        name: str,
        session_id: str,
        fn: Callable[..., Any],
        *args: Any,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> Future[Any]:
        def supervised() -> Any:
            try:
                return fn(*args)
            except Exception as exc:
                logger.exception("Job %s failed for session %s", name, session_id)
                if on_error is not None:
                    try:
                        on_error(exc)
                    except Exception:
                        logger.exception("Error handler for job %s failed (session %s)", name, session_id)
                return None

        logger.debug("Submitting job %s for session %s", name, session_id)
        future = self._executor.submit(supervised)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future[Any]) -> None:
        with self._lock:
            self._futures.discard(future)

    def drain(self, timeout: float | None = None) -> bool:
        """Wait until every job submitted so far (and any it submits) is done.

        Returns ``False`` if *timeout* elapsed first.
        """
        while True:
            with self._lock:
                pending = {f for f in self._futures if not f.done()}
            if not pending:
                return True
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                return False

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_jobs)


class SessionLocks:
    """Hand out one re-entrant lock per session id.

    Entries are reference counted and dropped once no thread holds or waits
    on them, so the map only contains sessions with work in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.RLock()
            self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[session_id] -= 1
                if not self._users[session_id]:
                    del self._users[session_id]
                    del self._locks[session_id]
