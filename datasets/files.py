"""Uploaded file classification and row extraction.

The HTTP layer enforces the upload size limit; everything here works on
bytes already in memory.
"""

import csv
import io
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

class FileType(str, Enum):
    IMAGE = 'image'
    VIDEO = 'video'
    AUDIO = 'audio'
    JSON = 'json'
    CSV = 'csv'
    TEXT = 'text'
    PDF = 'pdf'
    UNKNOWN = 'unknown'

EXACT_TYPES = {
    'application/json': FileType.JSON,
    'text/csv': FileType.CSV,
    'application/csv': FileType.CSV,
    'application/pdf': FileType.PDF
}

PREFIX_TYPES = (
    ('image/', FileType.IMAGE),
    ('video/', FileType.VIDEO),
    ('audio/', FileType.AUDIO),
    ('text/', FileType.TEXT)
)

def classify_file_type(mime_type: Optional[str]) -> FileType:
    """Map a declared MIME type to a file kind.

    Exact matches win over prefixes, so ``text/csv`` is csv rather than
    text. Matching is case-sensitive.
    """
    if not mime_type:
        return FileType.UNKNOWN

    if mime_type in EXACT_TYPES:
        return EXACT_TYPES[mime_type]

    for prefix, file_type in PREFIX_TYPES:
        if mime_type.startswith(prefix):
            return file_type

    return FileType.UNKNOWN

def _decode(content: bytes, file_type: FileType) -> str:
    try:
        return content.decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValidationError(f"Uploaded {file_type.value} file is not valid UTF-8")

def parse_rows(
    content: bytes,
    file_type: FileType,
    filename: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Turn uploaded bytes into row records.

    Args:
        content: Raw file bytes
        file_type: Result of :func:`classify_file_type`
        filename: Original file name, kept on descriptor rows

    Returns:
        List of row dicts. Binary kinds yield one descriptor row.

    Raises:
        ValidationError: If a json or csv file cannot be parsed
    """
    if file_type is FileType.JSON:
        try:
            parsed = json.loads(_decode(content, file_type))
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON file: {e.msg}")

        if isinstance(parsed, dict):
            return [parsed]
        if isinstance(parsed, list) and all(isinstance(item, dict) for item in parsed):
            return parsed
        raise ValidationError("JSON file must contain an object or an array of objects")

    if file_type is FileType.CSV:
        reader = csv.DictReader(io.StringIO(_decode(content, file_type)))
        try:
            rows = [dict(row) for row in reader]
        except csv.Error as e:
            raise ValidationError(f"Invalid CSV file: {e}")
        if reader.fieldnames is None:
            raise ValidationError("CSV file has no header row")
        return rows

    if file_type is FileType.TEXT:
        return [
            {'line': number, 'text': line}
            for number, line in enumerate(_decode(content, file_type).splitlines(), start=1)
            if line.strip()
        ]

    return [{
        'filename': filename,
        'file_type': file_type.value,
        'size_bytes': len(content)
    }]
