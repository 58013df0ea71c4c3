# ============================================================================
# CLAUDE CONTEXT - SELECTION STATE
# ============================================================================
# STATUS: Engine Module - single source of truth for selected features
# PURPOSE: Own the current selection, interaction tokens and change notifications
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: SelectionState
# DEPENDENCIES: threading, feature_query.models, util_logger
# PATTERNS: Single writer, immutable snapshots, observer
# ENTRY_POINTS: state = SelectionState(); token = state.begin_interaction()
# ============================================================================

"""
Selection State

Holds the currently selected features and the search criteria that produced
them as one immutable ``Selection`` snapshot. Readers always get a complete
snapshot; ``features`` and ``criteria`` are never observed half-updated.

Every point click, box start and search obtains an interaction token from
``begin_interaction()``. A commit carrying a token older than the newest one
is dropped, so a slow response from a superseded interaction can never
overwrite a newer result.
"""

from threading import Lock
from typing import Callable, Iterable, List, Optional

from util_logger import LoggerFactory, ComponentType
from .models import Feature, SearchCriteria, Selection

logger = LoggerFactory.create_logger(ComponentType.STATE, "SelectionState")

SelectionListener = Callable[[Selection], None]


class SelectionState:
    """
    Owned, explicitly passed selection store.

    Usage:
        state = SelectionState()
        unsubscribe = state.subscribe(lambda sel: print(len(sel.features)))

        token = state.begin_interaction()
        ...
        state.commit(features, criteria=None, token=token)
    """

    def __init__(self):
        self._lock = Lock()
        self._snapshot = Selection()
        self._token = 0
        self._listeners: List[SelectionListener] = []
        self._search_listeners: List[SelectionListener] = []

    # ========================================================================
    # READ
    # ========================================================================

    @property
    def snapshot(self) -> Selection:
        return self._snapshot

    # Alias used by presentation code
    selection = snapshot

    @property
    def current_token(self) -> int:
        return self._token

    def is_current(self, token: Optional[int]) -> bool:
        return token is None or token == self._token

    # ========================================================================
    # WRITE
    # ========================================================================

    def begin_interaction(self, clear: bool = False) -> int:
        """
        Issue a new interaction token, superseding every earlier one.

        Args:
            clear: Also clear the selection before returning (box start)

        Returns:
            The new token
        """
        with self._lock:
            self._token += 1
            token = self._token
            changed = None
            if clear and (self._snapshot.features or self._snapshot.criteria is not None):
                changed = self._replace((), None)

        if changed is not None:
            self._notify(self._listeners, changed)
        return token

    def commit(
        self,
        features: Iterable[Feature],
        criteria: Optional[SearchCriteria] = None,
        token: Optional[int] = None
    ) -> bool:
        """
        Replace the selection.

        Args:
            features: Ordered features of the new selection
            criteria: Search criteria behind it (None for point/box results)
            token: Interaction token; stale tokens are dropped

        Returns:
            True if committed, False if the token was superseded
        """
        with self._lock:
            if token is not None and token != self._token:
                logger.info(
                    f"Dropping commit from superseded interaction {token} (current {self._token})",
                    extra={'custom_dimensions': {'interaction_id': token}}
                )
                return False
            snapshot = self._replace(tuple(features), criteria)

        logger.debug(
            f"Selection revision {snapshot.revision}: {len(snapshot.features)} features",
            extra={'custom_dimensions': {'interaction_id': token}}
        )
        self._notify(self._listeners, snapshot)
        return True

    def clear(self, token: Optional[int] = None) -> bool:
        """Empty the selection and drop any criteria."""
        return self.commit((), None, token=token)

    def _replace(self, features, criteria) -> Selection:
        # Caller holds the lock
        self._snapshot = Selection(
            features=features,
            criteria=criteria,
            revision=self._snapshot.revision + 1
        )
        return self._snapshot

    # ========================================================================
    # NOTIFICATION
    # ========================================================================

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        """
        Call ``listener(selection)`` after every change.

        Returns:
            Function that removes the listener
        """
        return self._add(self._listeners, listener)

    def on_search_complete(self, listener: SelectionListener) -> Callable[[], None]:
        """Call ``listener(selection)`` when an attribute search finishes or is cleared."""
        return self._add(self._search_listeners, listener)

    def notify_search_complete(self) -> None:
        self._notify(self._search_listeners, self._snapshot)

    def _add(self, listeners: List[SelectionListener], listener: SelectionListener) -> Callable[[], None]:
        with self._lock:
            listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    def _notify(self, listeners: List[SelectionListener], snapshot: Selection) -> None:
        with self._lock:
            targets = list(listeners)
        for listener in targets:
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"Selection listener {listener!r} failed")
