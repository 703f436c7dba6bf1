"""
Hole registry: keeps the known holes in sync with the text of their files.
"""

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from typehole.config import log_event
from typehole.models import Hole, HoleSite, Range
from typehole.services.parsing import scan_for_holes
from typehole.state import State, StateStore

Scanner = Callable[[str], List[HoleSite]]


class HoleRegistry:
    """
    Reconciles holes per file against a scan of the file's current text.
    Holes still present keep their samples; holes that vanished lose them.
    """

    def __init__(self, store: StateStore, scanner: Scanner = scan_for_holes):
        self.store = store
        self.scanner = scanner

    # --- READS ---

    def get_state(self) -> State:
        return self.store.get_state()

    def get_hole(self, hole_id: str) -> Optional[Hole]:
        return next((h for h in self.get_state().holes if h.id == hole_id), None)

    def holes_for_file(self, file_name: str) -> List[Hole]:
        return [h for h in self.get_state().holes if h.file_name == file_name]

    def get_next_available_id(self) -> int:
        return self.get_state().next_unique_id

    # --- RECONCILIATION ---

    def reconcile(self, file_name: str, text: str) -> List[HoleSite]:
        """
        Diff the holes known for `file_name` against the ones found in `text`.
        Returns the sites whose id already belongs to another file; those are
        not registered.
        """
        sites = self.scanner(text)
        conflicts: List[HoleSite] = []

        def change(state: State) -> State:
            conflicts.clear()
            owners = {h.id: h.file_name for h in state.holes}
            known = {h.id for h in state.holes if h.file_name == file_name}
            present = []
            for site in sites:
                owner = owners.get(site.id)
                if owner is not None and owner != file_name:
                    conflicts.append(site)
                elif site.id not in present:
                    present.append(site.id)

            added = [hole_id for hole_id in present if hole_id not in known]
            removed = known.difference(present)
            if not added and not removed:
                return state

            for hole_id in added:
                log_event(logging.INFO, "typehole_found", hole_id=hole_id, file=file_name)
            for hole_id in sorted(removed):
                log_event(logging.INFO, "typehole_removed", hole_id=hole_id, file=file_name)

            holes = tuple(h for h in state.holes if h.id not in removed)
            holes += tuple(Hole(hole_id, file_name) for hole_id in added)
            samples = {k: v for k, v in state.samples.items() if k not in removed}
            return replace(
                state,
                next_unique_id=state.next_unique_id + len(added),
                holes=holes,
                samples=samples,
            )

        self.store.update(change)
        for site in conflicts:
            log_event(logging.WARNING, "typehole_id_conflict", hole_id=site.id, file=file_name)
        return list(conflicts)

    def on_file_deleted(self, file_name: str):
        """Forget every hole of a file that no longer exists, with its samples and warnings."""

        def change(state: State) -> State:
            removed = {h.id for h in state.holes if h.file_name == file_name}
            if not removed and file_name not in state.warnings:
                return state
            warnings = {k: v for k, v in state.warnings.items() if k != file_name}
            return replace(
                state,
                holes=tuple(h for h in state.holes if h.id not in removed),
                samples={k: v for k, v in state.samples.items() if k not in removed},
                warnings=warnings,
            )

        self.store.update(change)
        log_event(logging.INFO, "file_deleted", file=file_name)

    # --- WARNINGS ---

    def get_warnings(self, file_name: str) -> Tuple[Range, ...]:
        return self.get_state().warnings.get(file_name, ())

    def add_warning(self, file_name: str, range: Range):
        def change(state: State) -> State:
            existing = state.warnings.get(file_name, ())
            if range in existing:
                return state
            return replace(state, warnings={**state.warnings, file_name: existing + (range,)})

        self.store.update(change)

    def clear_warnings(self, file_name: str):
        def change(state: State) -> State:
            if not state.warnings.get(file_name):
                return state
            return replace(state, warnings={**state.warnings, file_name: ()})

        self.store.update(change)
