"""One-shot guards."""

import threading


class OneShot:
    """A flag that can be claimed exactly once, from any thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._fired = False

    def claim(self) -> bool:
        """Return True for the first caller only."""
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True

    @property
    def fired(self) -> bool:
        return self._fired

    def __repr__(self) -> str:
        return f"OneShot(fired={self._fired})"
