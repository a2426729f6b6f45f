from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("xmpp_config.locks")
logger.addHandler(logging.NullHandler())


class InitializationGate:
    """Run an initializer at most once to completion.

    Concurrent callers block until the running initializer finishes. A call
    made from inside the initializer (same thread) returns immediately. If the
    initializer raises, the gate stays open and the next call runs it again.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._initialized = False
        self._owner: Optional[int] = None
        self._attempts = 0

    @property
    def attempts(self) -> int:
        return self._attempts

    def is_initialized(self) -> bool:
        return self._initialized

    def in_progress(self) -> bool:
        """True when called from the thread currently running the initializer."""
        return self._owner == threading.get_ident()

    def run_once(self, initializer: Callable[[], None]) -> bool:
        """Return True if this call ran the initializer to completion."""
        if self._initialized:
            return False
        with self._lock:
            if self._initialized or self.in_progress():
                return False
            self._owner = threading.get_ident()
            self._attempts += 1
            logger.debug("Initialization attempt %d started", self._attempts)
            try:
                initializer()
            except Exception:
                logger.debug("Initialization attempt %d failed", self._attempts)
                raise
            finally:
                self._owner = None
            self._initialized = True
            logger.debug("Initialization attempt %d completed", self._attempts)
            return True
