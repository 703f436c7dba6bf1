"""
Application state management.
One immutable snapshot of holes, samples and warnings, replaced on every mutation.
"""

from dataclasses import dataclass, field
from threading import RLock
from typing import Callable, Dict, List, Mapping, Tuple

from typehole.models import Hole, Range


@dataclass(frozen=True)
class State:
    """
    Snapshot of everything the registry knows.
    Never mutate in place; build a new one with dataclasses.replace.
    """
    next_unique_id: int = 0
    holes: Tuple[Hole, ...] = ()
    samples: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    warnings: Mapping[str, Tuple[Range, ...]] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "next_unique_id": self.next_unique_id,
            "holes": [{"id": h.id, "file_name": h.file_name} for h in self.holes],
            "samples": {hole_id: list(samples) for hole_id, samples in self.samples.items()},
            "warnings": {
                file_name: [r.to_dict() for r in ranges]
                for file_name, ranges in self.warnings.items()
            },
        }


Listener = Callable[[State], None]


class StateStore:
    """
    Owner of the current State.
    All writes go through set_state/update, which swap the snapshot and then
    notify subscribers while still holding the lock, so every subscriber sees
    snapshots in the same total order.
    """

    def __init__(self, initial: State = None):
        self._state = initial if initial is not None else State()
        self._listeners: List[Listener] = []
        self._lock = RLock()

    def get_state(self) -> State:
        return self._state

    def set_state(self, new_state: State) -> State:
        with self._lock:
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state)
            return new_state

    def update(self, change: Callable[[State], State]) -> State:
        """Apply `change` to the current snapshot. Returning the same object skips the notification."""
        with self._lock:
            current = self._state
            new_state = change(current)
            if new_state is current:
                return current
            return self.set_state(new_state)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for "state replaced" events. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe
