"""Keyed debounce scheduler built on cancellable timers."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Hashable, List, Set, Tuple

from .logging import get_logger

Action = Callable[[], None]
TimerFactory = Callable[[float, Callable[..., None], Tuple[Any, ...]], Any]


def _daemon_timer(delay: float, function: Callable[..., None], args: Tuple[Any, ...]) -> threading.Timer:
    timer = threading.Timer(delay, function, args=args)
    timer.daemon = True
    return timer


class DebounceScheduler:
    """Runs one action per key after the key has been quiet for ``delay`` seconds.

    ``schedule`` on a key with a pending timer cancels it and starts a new
    one, so a burst collapses into a single call. Actions for different keys
    run independently on their own timer threads. If a key fires again while
    its previous action is still running, the new action runs right after it
    on the same thread, so passes for one key never overlap.
    """

    def __init__(self, timer_factory: TimerFactory | None = None) -> None:
        self._lock = threading.Lock()
        self._timers: Dict[Hashable, Tuple[object, Any]] = {}
        self._running: Set[Hashable] = set()
        self._rerun: Dict[Hashable, Action] = {}
        self._timer_factory = timer_factory or _daemon_timer
        self.logger = get_logger("scheduler")

    def schedule(self, key: Hashable, delay: float, action: Action) -> None:
        token = object()
        timer = self._timer_factory(delay, self._fire, (key, token, action))
        with self._lock:
            existing = self._timers.get(key)
            self._timers[key] = (token, timer)
        if existing is not None:
            existing[1].cancel()
        timer.start()

    def cancel(self, key: Hashable) -> bool:
        with self._lock:
            existing = self._timers.pop(key, None)
        if existing is None:
            return False
        existing[1].cancel()
        return True

    def cancel_all(self) -> int:
        with self._lock:
            pending = list(self._timers.values())
            self._timers.clear()
            self._rerun.clear()
        for _, timer in pending:
            timer.cancel()
        return len(pending)

    def pending_keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._timers)

    def _fire(self, key: Hashable, token: object, action: Action) -> None:
        with self._lock:
            current = self._timers.get(key)
            if current is None or current[0] is not token:
                # Superseded; a cancelled timer can still wake up once.
                return
            del self._timers[key]
            if key in self._running:
                self._rerun[key] = action
                return
            self._running.add(key)

        next_action: Action | None = action
        try:
            while next_action is not None:
                self._run(key, next_action)
                with self._lock:
                    next_action = self._rerun.pop(key, None)
                    if next_action is None:
                        self._running.discard(key)
        except BaseException:
            with self._lock:
                self._running.discard(key)
            raise

    def _run(self, key: Hashable, action: Action) -> None:
        try:
            action()
        except Exception:
            self.logger.exception("Debounced action for %s failed", key)


__all__ = ["DebounceScheduler"]
