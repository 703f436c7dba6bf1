"""
Per-hole sample lists, kept most recent first inside the shared State.
"""

import logging
from dataclasses import replace
from typing import Optional, Tuple

from typehole.config import log_event
from typehole.state import State, StateStore


class SampleStore:
    """Samples live in the State snapshot; this only reads and appends."""

    def __init__(self, store: StateStore):
        self.store = store

    def get_samples(self, hole_id: str) -> Tuple[str, ...]:
        return self.store.get_state().samples.get(hole_id, ())

    def add_sample(self, hole_id: str, sample: str) -> Optional[Tuple[str, ...]]:
        """
        Prepend `sample` and return the hole's new list. Unknown holes get
        nothing stored and None back.
        """
        result = None

        def change(state: State) -> State:
            nonlocal result
            if not any(h.id == hole_id for h in state.holes):
                return state
            result = (sample,) + state.samples.get(hole_id, ())
            return replace(state, samples={**state.samples, hole_id: result})

        self.store.update(change)
        if result is None:
            log_event(logging.INFO, "sample_for_unknown_hole", hole_id=hole_id)
        else:
            log_event(logging.DEBUG, "sample_added", hole_id=hole_id, samples=len(result))
        return result
