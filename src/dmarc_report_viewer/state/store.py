"""Thread-safe holder of the published application state."""

from __future__ import annotations

import logging
import threading

from dmarc_report_viewer.models.state import AppState

logger = logging.getLogger(__name__)


class StateCorruptedError(RuntimeError):
    """Raised when the store was poisoned by a fault inside its critical section."""


class StateStore:
    """Owns the single AppState snapshot.

    Readers get the current immutable snapshot; the update loop replaces it as
    a whole. There are no per-field setters.
    """

    def __init__(self, initial: AppState | None = None) -> None:
        """Initialize the store.

        Args:
            initial: Starting snapshot; an empty state when omitted.
        """
        self._lock = threading.Lock()
        self._state = initial if initial is not None else AppState()
        self._poisoned = False

    def read(self) -> AppState:
        """Return the current snapshot.

        Raises:
            StateCorruptedError: If a previous publish failed mid-update.
        """
        with self._lock:
            self._check()
            return self._state

    def publish(self, state: AppState) -> None:
        """Replace the snapshot.

        Args:
            state: Fully built snapshot for one cycle.

        Raises:
            StateCorruptedError: If the store is poisoned, or becomes poisoned
                because replacement failed.
        """
        with self._lock:
            self._check()
            try:
                self._replace(state)
            except BaseException as exc:
                self._poisoned = True
                raise StateCorruptedError("Failed to replace application state") from exc
        logger.info("Finished updating shared state")

    def _replace(self, state: AppState) -> None:
        """Swap the snapshot; called with the lock held."""
        if not isinstance(state, AppState):
            raise TypeError(f"expected AppState, got {type(state).__name__}")
        self._state = state

    def _check(self) -> None:
        """Refuse access once poisoned; called with the lock held."""
        if self._poisoned:
            raise StateCorruptedError("Application state is poisoned")
