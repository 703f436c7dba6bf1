"""
Queue processor for FIFO event handling.
Samples and file events are applied one at a time, in the order they arrived.
"""

import logging
import queue
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from typehole.config import log_event
from typehole.services.ingestion import process_sample

SAMPLE = "sample"
FILE_CHANGED = "file_changed"
FILE_DELETED = "file_deleted"


@dataclass
class QueueItem:
    """Item in the processing queue."""
    request_id: str
    kind: str
    payload: Dict
    timestamp: datetime = field(default_factory=datetime.now)


class EventQueue:
    """Single consumer for every change to a workspace."""

    def __init__(self, workspace):
        self.workspace = workspace
        self.queue: "queue.Queue[QueueItem]" = queue.Queue()
        self._worker_thread: Optional[threading.Thread] = None
        self._worker_running = False

    def enqueue(self, kind: str, **payload) -> str:
        """Add an event to the queue. Returns its request id."""
        request_id = str(uuid.uuid4())[:8]
        self.queue.put(QueueItem(request_id=request_id, kind=kind, payload=payload))
        log_event(logging.DEBUG, "queue_enqueue", request_id=request_id, kind=kind, queue_size=self.queue.qsize())
        return request_id

    def handle(self, item: QueueItem) -> Dict:
        if item.kind == SAMPLE:
            return process_sample(self.workspace, item.payload["hole_id"], item.payload["interfaces"])
        if item.kind == FILE_CHANGED:
            self.workspace.on_file_changed(item.payload["file"], item.payload.get("content"))
            return {"status": "success"}
        if item.kind == FILE_DELETED:
            self.workspace.on_file_deleted(item.payload["file"])
            return {"status": "success"}
        log_event(logging.WARNING, "queue_unknown_kind", kind=item.kind)
        return {"status": "error", "message": f"Unknown event: {item.kind}"}

    def _run_item(self, item: QueueItem) -> Dict:
        try:
            result = self.handle(item)
            log_event(logging.DEBUG, "queue_process_complete", request_id=item.request_id, status=result.get("status"))
            return result
        except Exception as e:
            log_event(logging.ERROR, "queue_process_error", request_id=item.request_id, kind=item.kind, error=str(e))
            return {"status": "error", "message": str(e)}
        finally:
            self.queue.task_done()

    def process_pending(self) -> List[Dict]:
        """Drain the queue on the calling thread."""
        results = []
        while True:
            try:
                item = self.queue.get_nowait()
            except queue.Empty:
                return results
            results.append(self._run_item(item))

    def _process_queue(self):
        """Background worker that processes queue items in FIFO order."""
        log_event(logging.INFO, "queue_worker_started")
        while self._worker_running:
            try:
                item = self.queue.get(timeout=1.0)
            except queue.Empty:
                continue
            self._run_item(item)
        log_event(logging.INFO, "queue_worker_stopped")

    def start(self):
        """Start the background queue processing worker."""
        if self._worker_thread is not None and self._worker_thread.is_alive():
            log_event(logging.WARNING, "queue_worker_already_running")
            return
        self._worker_running = True
        self._worker_thread = threading.Thread(target=self._process_queue, daemon=True)
        self._worker_thread.start()

    def stop(self):
        """Stop the background queue processing worker."""
        self._worker_running = False
        if self._worker_thread is not None:
            self._worker_thread.join(timeout=5.0)
        log_event(logging.INFO, "queue_worker_thread_stopped")
