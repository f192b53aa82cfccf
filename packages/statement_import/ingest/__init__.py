"""Statement ingestion: format detection plus one adapter per file format."""

from .detect import decode_content, detect_format, parse_statement

__all__ = ["decode_content", "detect_format", "parse_statement"]
