"""
Flask routes for the Typehole API.
"""

import json
import queue
import logging

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from typehole.config import log_event
from typehole.models import Range
from typehole.services.parsing import SourceLines, is_expression
from typehole.services.queue_processor import FILE_CHANGED, FILE_DELETED, SAMPLE
from typehole.services.sources import read_source_file
from typehole.services.transforms import TransformError

# Create blueprint
api = Blueprint('api', __name__)


def _workspace():
    return current_app.extensions["typehole.workspace"]


def _events():
    return current_app.extensions["typehole.events"]


@api.route('/health')
def health():
    """Health check endpoint."""
    state = _workspace().store.get_state()
    return jsonify({
        "status": "ok",
        "workspace": str(_workspace().root),
        "holes": len(state.holes),
        "pending_events": _events().queue.qsize(),
    })


# --- INGESTION ---

@api.route('/type', methods=['POST'])
def ingest_type():
    """
    Receive an observed shape from instrumented code. Always acknowledged
    with an empty object; invalid payloads are dropped before the queue.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        log_event(logging.WARNING, "ingest_malformed_payload")
        return jsonify({})

    hole_id = data.get('id')
    interfaces = data.get('interfaces')
    if not isinstance(hole_id, str) or not isinstance(interfaces, str):
        log_event(logging.WARNING, "ingest_malformed_payload", hole_id=hole_id)
        return jsonify({})

    _events().enqueue(SAMPLE, hole_id=hole_id, interfaces=interfaces)
    return jsonify({})


# --- EDITOR ACTIONS ---

@api.route('/holes', methods=['POST'])
def add_typehole():
    """Wrap the selected expression of a file into a new typehole."""
    data = request.get_json(silent=True) or {}
    file_name = data.get('file')
    try:
        selection = Range.from_dict(data['range'])
    except (KeyError, TypeError, ValueError):
        return jsonify({"error": "A file and a range are required"}), 400
    if not isinstance(file_name, str) or not file_name:
        return jsonify({"error": "A file and a range are required"}), 400

    workspace = _workspace()
    try:
        hole_id = workspace.add_typehole(file_name, selection)
    except FileNotFoundError:
        return jsonify({"error": f"No such file: {file_name}"}), 404
    except (TransformError, ValueError) as e:
        log_event(logging.INFO, "api_add_typehole_refused", file=file_name, error=str(e))
        return jsonify({"error": str(e)}), 400

    return jsonify({"status": "success", "id": hole_id, "file": file_name})


@api.route('/expression', methods=['POST'])
def check_expression():
    """Whether a selection can become a typehole."""
    data = request.get_json(silent=True) or {}
    text = data.get('text')
    if text is None and 'file' in data and 'range' in data:
        try:
            source = read_source_file(_workspace().root, data['file'])
            selection = Range.from_dict(data['range'])
        except (OSError, KeyError, TypeError, ValueError):
            return jsonify({"error": "Could not read selection"}), 400
        text = SourceLines(source).text_in(selection)
    return jsonify({"expression": isinstance(text, str) and is_expression(text)})


@api.route('/files/changed', methods=['POST'])
def file_changed():
    data = request.get_json(silent=True) or {}
    file_name = data.get('file')
    content = data.get('content')
    if not isinstance(file_name, str) or (content is not None and not isinstance(content, str)):
        return jsonify({"error": "A file is required"}), 400
    request_id = _events().enqueue(FILE_CHANGED, file=file_name, content=content)
    return jsonify({"status": "queued", "request_id": request_id})


@api.route('/files/deleted', methods=['POST'])
def file_deleted():
    data = request.get_json(silent=True) or {}
    file_name = data.get('file')
    if not isinstance(file_name, str):
        return jsonify({"error": "A file is required"}), 400
    request_id = _events().enqueue(FILE_DELETED, file=file_name)
    return jsonify({"status": "queued", "request_id": request_id})


# --- STATE ---

@api.route('/state')
def get_state():
    return jsonify(_workspace().snapshot())


@api.route('/holes/<hole_id>')
def get_hole(hole_id):
    workspace = _workspace()
    hole = workspace.registry.get_hole(hole_id)
    if hole is None:
        return jsonify({"error": "Hole not found"}), 404
    declaration = workspace.current_declaration(hole_id)
    return jsonify({
        "id": hole.id,
        "file": hole.file_name,
        "samples": list(workspace.samples.get_samples(hole_id)),
        "type_name": declaration.name,
        "declaration": declaration.text,
    })


@api.route('/warnings')
def get_warnings():
    file_name = request.args.get('file', '')
    ranges = _workspace().registry.get_warnings(file_name)
    return jsonify({"file": file_name, "warnings": [r.to_dict() for r in ranges]})


@api.route('/stream')
def stream():
    """SSE endpoint for state changes and synthesized types."""
    workspace = _workspace()
    client_queue = workspace.add_client()

    def event_stream():
        yield f"data: {json.dumps({'type': 'init', 'state': workspace.snapshot()})}\n\n"
        try:
            while True:
                try:
                    data = client_queue.get(timeout=2.0)
                    yield f"data: {json.dumps(data)}\n\n"
                except queue.Empty:
                    yield f"data: {json.dumps({'type': 'heartbeat'})}\n\n"
        finally:
            workspace.remove_client(client_queue)

    return Response(
        stream_with_context(event_stream()),
        mimetype="text/event-stream",
        headers={
            'Cache-Control': 'no-cache',
            'Connection': 'keep-alive',
            'X-Accel-Buffering': 'no'
        }
    )
