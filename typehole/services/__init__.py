"""Services package for Typehole."""

from typehole.services.parsing import (
    get_ast,
    find_typeholes,
    get_hole_id,
    scan_for_holes,
    is_expression,
)

from typehole.services.registry import HoleRegistry

from typehole.services.samples import SampleStore

from typehole.services.sources import (
    read_source_file,
    write_source_file,
    iter_source_files,
)

from typehole.services.transforms import (
    TransformError,
    insert_instrumentation,
    replace_type_declaration,
    find_type_alias_name,
)

from typehole.services.ingestion import process_sample

from typehole.services.queue_processor import EventQueue

__all__ = [
    # Parsing
    "get_ast",
    "find_typeholes",
    "get_hole_id",
    "scan_for_holes",
    "is_expression",
    # Registry
    "HoleRegistry",
    "SampleStore",
    # Sources
    "read_source_file",
    "write_source_file",
    "iter_source_files",
    # Transforms
    "TransformError",
    "insert_instrumentation",
    "replace_type_declaration",
    "find_type_alias_name",
    # Ingestion
    "process_sample",
    "EventQueue",
]
