"""
Workspace: the one owner of registry state for a source tree.
Bundles the state store, hole registry, sample store and SSE clients.
"""

import queue
import logging
from pathlib import Path
from threading import Lock, RLock
from typing import Dict, List, Optional

from typehole.config import log_event, PLACEHOLDER_TYPE
from typehole.models import HoleSite, Range
from typehole.services.parsing import hole_id_for_index, scan_for_holes
from typehole.services.registry import HoleRegistry
from typehole.services.samples import SampleStore
from typehole.services.sources import (
    iter_source_files,
    read_source_file,
    relative_file_name,
    write_source_file,
)
from typehole.services.transforms import (
    TransformError,
    find_type_alias_name,
    insert_instrumentation,
)
from typehole.shapes import TypeDeclaration
from typehole.state import State, StateStore
from typehole.synthesis import synthesize


class Workspace:
    """Coordinates every change to holes and samples under one source root."""

    def __init__(self, root: Path, store: Optional[StateStore] = None):
        self.root = Path(root)
        self.store = store if store is not None else StateStore()
        self.registry = HoleRegistry(self.store)
        self.samples = SampleStore(self.store)
        self.clients: List[queue.Queue] = []
        self._clients_lock = Lock()
        # Held across every read-modify-write of a source file.
        self.file_lock = RLock()
        self.store.subscribe(self._on_state_changed)

    # --- SSE BROADCASTING ---

    def add_client(self) -> queue.Queue:
        client_queue = queue.Queue()
        with self._clients_lock:
            self.clients.append(client_queue)
        return client_queue

    def remove_client(self, client_queue: queue.Queue):
        with self._clients_lock:
            if client_queue in self.clients:
                self.clients.remove(client_queue)

    def broadcast(self, data: Dict):
        """Send an event to every connected SSE client."""
        with self._clients_lock:
            clients = list(self.clients)
        for client_queue in clients:
            client_queue.put(data)
        log_event(logging.DEBUG, "sse_broadcast", type=data.get("type"), clients=len(clients))

    def _on_state_changed(self, state: State):
        self.broadcast({"type": "state", "state": state.to_dict()})

    # --- FILE EVENTS ---

    def load(self):
        """Rebuild holes from every source file under the root."""
        for path in iter_source_files(self.root):
            file_name = relative_file_name(self.root, path)
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                log_event(logging.WARNING, "source_file_unreadable", file=file_name, error=str(e))
                continue
            self.on_file_changed(file_name, text)
        log_event(logging.INFO, "workspace_loaded", root=str(self.root), holes=len(self.store.get_state().holes))

    def on_file_changed(self, file_name: str, text: Optional[str] = None):
        with self.file_lock:
            if text is None:
                try:
                    text = read_source_file(self.root, file_name)
                except FileNotFoundError:
                    self.on_file_deleted(file_name)
                    return
            conflicts = self.registry.reconcile(file_name, text)
            self.refresh_warnings(file_name, text, conflicts)

    def on_file_deleted(self, file_name: str):
        self.registry.on_file_deleted(file_name)

    def refresh_warnings(self, file_name: str, text: str, conflicts: List[HoleSite] = ()):
        """
        Flag holes that cannot receive a type: ids owned by another file, and
        holes whose variable has no alias annotation.
        """
        self.registry.clear_warnings(file_name)
        for site in conflicts:
            self.registry.add_warning(file_name, site.range)
        owned = {h.id for h in self.registry.holes_for_file(file_name)}
        for site in scan_for_holes(text):
            if site.id in owned and find_type_alias_name(text, site.id) is None:
                self.registry.add_warning(file_name, site.range)

    # --- ACTIONS ---

    def next_hole_id(self, text: str) -> str:
        """First `t<N>` from the session counter on that is not in use anywhere."""
        taken = {h.id for h in self.store.get_state().holes}
        taken.update(site.id for site in scan_for_holes(text))
        index = self.registry.get_next_available_id()
        while hole_id_for_index(index) in taken:
            index += 1
        return hole_id_for_index(index)

    def add_typehole(self, file_name: str, selection: Range) -> str:
        """Instrument the selected expression and register the new hole. Returns its id."""
        with self.file_lock:
            text = read_source_file(self.root, file_name)
            hole_id = self.next_hole_id(text)
            new_text = insert_instrumentation(text, selection, hole_id)
            if not write_source_file(self.root, file_name, new_text):
                raise TransformError(f"could not write {file_name}")
            self.on_file_changed(file_name, new_text)
        log_event(logging.INFO, "typehole_added", hole_id=hole_id, file=file_name)
        return hole_id

    def current_declaration(self, hole_id: str) -> Optional[TypeDeclaration]:
        """What synthesis gives for a hole right now, named after its alias."""
        hole = self.registry.get_hole(hole_id)
        if hole is None:
            return None
        type_name = PLACEHOLDER_TYPE
        try:
            type_name = find_type_alias_name(read_source_file(self.root, hole.file_name), hole_id) or type_name
        except OSError as e:
            log_event(logging.DEBUG, "source_file_unreadable", file=hole.file_name, error=str(e))
        return synthesize(self.samples.get_samples(hole_id), type_name)

    def snapshot(self) -> Dict:
        return self.store.get_state().to_dict()
