"""Listing metadata helpers: endpoint slugs and sample-data detection."""

import re
from typing import Any, Dict, List

ENDPOINT_PREFIX = '/api/datasets/'

def slugify(name: str) -> str:
    """Lower-case ``name`` and collapse everything non-alphanumeric to dashes."""
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
    return slug or 'dataset'

def endpoint_path(name: str, attempt: int = 1) -> str:
    """Return the endpoint path for ``name``; attempts after the first get a suffix."""
    slug = slugify(name)
    if attempt > 1:
        slug = f"{slug}-{attempt}"
    return f"{ENDPOINT_PREFIX}{slug}"

def _json_type(value: Any) -> str:
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, int):
        return 'integer'
    if isinstance(value, float):
        return 'number'
    if isinstance(value, list):
        return 'array'
    if isinstance(value, dict):
        return 'object'
    return 'string'

def is_present(value: Any) -> bool:
    """True unless ``value`` is None or an empty string."""
    return value is not None and value != ''

def auto_detect_metadata(records: List[Any]) -> Dict[str, Any]:
    """Derive schema, row count, summary and quality from sample records.

    The first record defines the field set. Fields that are null in the
    first record are typed as strings and left out of ``required``.

    Returns:
        Dict with any of ``schema``, ``total_rows``, ``content_summary`` and
        ``quality_score``; empty when there is nothing to detect
    """
    if not isinstance(records, list) or not records:
        return {}

    detected: Dict[str, Any] = {'total_rows': len(records)}

    first = records[0]
    if not isinstance(first, dict):
        return detected

    fields = list(first.keys())
    detected['schema'] = {
        'type': 'array',
        'items': {
            'type': 'object',
            'properties': {
                field: {'type': _json_type(first[field])} for field in fields
            },
            'required': [field for field in fields if first[field] is not None]
        }
    }
    detected['content_summary'] = (
        f"Dataset with {len(records)} records containing {len(fields)} fields: "
        f"{', '.join(fields)}"
    )

    total = 0
    present = 0
    for record in records:
        for field in fields:
            total += 1
            if isinstance(record, dict) and is_present(record.get(field)):
                present += 1
    detected['quality_score'] = present / total if total else 0.5

    return detected
