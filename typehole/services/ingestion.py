"""
Sample ingestion: store an observed shape, re-synthesize, splice the result.
"""

import logging
from typing import Dict

from typehole.config import log_event
from typehole.services.sources import read_source_file, write_source_file
from typehole.services.transforms import (
    find_hole_range,
    find_type_alias_name,
    replace_type_declaration,
)
from typehole.shapes import ShapeParseError, parse_sample
from typehole.synthesis import synthesize


def _flag_hole(workspace, file_name: str, source: str, hole_id: str):
    hole_range = find_hole_range(source, hole_id)
    if hole_range is not None:
        workspace.registry.add_warning(file_name, hole_range)


def process_sample(workspace, hole_id: str, shape_text: str) -> Dict:
    """
    Handle one `(hole id, observed shape)` pair from running code.
    Never raises for bad input; the returned status is for logs and tests.
    """
    try:
        parse_sample(shape_text)
    except ShapeParseError as e:
        log_event(logging.WARNING, "sample_rejected", hole_id=hole_id, error=str(e))
        return {"status": "rejected", "reason": str(e)}

    hole = workspace.registry.get_hole(hole_id)
    if hole is None:
        log_event(logging.INFO, "sample_dropped_unknown_hole", hole_id=hole_id)
        return {"status": "dropped"}

    samples = workspace.samples.add_sample(hole_id, shape_text)
    if samples is None:
        return {"status": "dropped"}

    with workspace.file_lock:
        try:
            source = read_source_file(workspace.root, hole.file_name)
        except (OSError, ValueError) as e:
            log_event(logging.ERROR, "sample_source_unreadable", hole_id=hole_id, file=hole.file_name, error=str(e))
            return {"status": "error", "message": str(e)}

        type_name = find_type_alias_name(source, hole_id)
        if type_name is None:
            _flag_hole(workspace, hole.file_name, source, hole_id)
            log_event(logging.INFO, "sample_without_type_alias", hole_id=hole_id, file=hole.file_name)
            return {"status": "no_type_alias", "samples": len(samples)}

        declaration = synthesize(samples, type_name)
        new_source = replace_type_declaration(source, hole_id, declaration.text, declaration.typing_names)
        if new_source is None:
            _flag_hole(workspace, hole.file_name, source, hole_id)
            log_event(logging.INFO, "type_alias_not_declared", hole_id=hole_id, type_name=type_name)
            return {"status": "no_type_alias", "samples": len(samples)}

        changed = new_source != source
        if changed:
            if not write_source_file(workspace.root, hole.file_name, new_source):
                return {"status": "error", "message": "Failed to write file"}
            workspace.on_file_changed(hole.file_name, new_source)

    log_event(
        logging.INFO,
        "type_synthesized",
        hole_id=hole_id,
        type_name=type_name,
        samples=len(samples),
        changed=changed,
    )
    workspace.broadcast({
        "type": "type_updated",
        "hole_id": hole_id,
        "file": hole.file_name,
        "type_name": type_name,
        "declaration": declaration.text,
    })
    return {
        "status": "success",
        "type_name": type_name,
        "samples": len(samples),
        "changed": changed,
    }
