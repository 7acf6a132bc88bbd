"""One-shot completion signal between the callback listener and the orchestrator."""

from __future__ import annotations

import threading
from typing import Optional


class CompletionGate:
    """A single-fire event that wakes the orchestrator exactly once.

    Any number of handler threads may call :meth:`fire`; only the first call
    has an effect and only that call returns ``True``. The flag is checked
    and set under a lock, so racing duplicate callbacks can never deliver
    twice. :meth:`wait` may be called repeatedly; once fired it returns
    immediately.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired = False
        self._event = threading.Event()

    @property
    def is_fired(self) -> bool:
        return self._event.is_set()

    def fire(self) -> bool:
        """Signal completion.

        Returns:
            ``True`` for the call that fired the gate, ``False`` for every
            later call.
        """
        with self._lock:
            if self._fired:
                return False
            self._fired = True
        self._event.set()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the gate fires.

        Args:
            timeout: Seconds to wait, or ``None`` to wait indefinitely.

        Returns:
            ``True`` once fired, ``False`` if *timeout* elapsed first.
        """
        return self._event.wait(timeout)
