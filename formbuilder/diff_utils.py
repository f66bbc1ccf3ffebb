"""
Diff utilities for the form builder.
Compares schema snapshots with DeepDiff to summarize what changed between the
last saved version of a form and the version being edited.
"""

import re
from typing import Dict, Any, Optional, List
import logging

from deepdiff import DeepDiff

from formbuilder.schema_model import FormField, FormSchema

logger = logging.getLogger(__name__)

# Bookkeeping keys that change on every edit and are not user changes
_IGNORED_PATHS = {"root['updatedAt']"}

_CHANGE_TYPES = (
    'values_changed',
    'type_changes',
    'dictionary_item_added',
    'dictionary_item_removed',
    'iterable_item_added',
    'iterable_item_removed',
)

_PATH_TOKEN_PATTERN = re.compile(r"\['([^']*)'\]|\[(\d+)\]")


def calculate_diff(original: Dict[str, Any], modified: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Calculate differences between two plain-data snapshots.

    Args:
        original: Snapshot before the edits
        modified: Snapshot after the edits

    Returns:
        Dictionary keyed by DeepDiff change type; each value maps a DeepDiff
        path to its change details
    """
    diff = DeepDiff(
        original,
        modified,
        ignore_order=False,
        verbose_level=2,
        exclude_paths=_IGNORED_PATHS,
    )

    processed: Dict[str, Dict[str, Any]] = {}
    for change_type in _CHANGE_TYPES:
        section = diff.get(change_type)
        if not section:
            continue
        if hasattr(section, 'items'):
            processed[change_type] = {str(path): value for path, value in section.items()}
        else:
            processed[change_type] = {str(path): None for path in section}
    return processed


def has_changes(diff: Dict[str, Any]) -> bool:
    """
    Check if there are any changes in the diff.

    Args:
        diff: Diff dictionary from calculate_diff

    Returns:
        True if there are changes, False otherwise
    """
    if not diff:
        return False
    return any(diff.get(change_type) for change_type in _CHANGE_TYPES)


def get_change_summary(diff: Dict[str, Any]) -> Dict[str, int]:
    """
    Get a summary of changes by type.

    Args:
        diff: Diff dictionary from calculate_diff

    Returns:
        Dictionary with change counts by type
    """
    summary = {
        'modified': len(diff.get('values_changed', {})),
        'type_changed': len(diff.get('type_changes', {})),
        'added': len(diff.get('dictionary_item_added', {})) + len(diff.get('iterable_item_added', {})),
        'removed': len(diff.get('dictionary_item_removed', {})) + len(diff.get('iterable_item_removed', {})),
    }
    summary['total'] = sum(summary.values())
    return summary


def clean_path(path: str) -> str:
    """
    Turn a DeepDiff path into a readable dotted path.

    Example: "root['fields'][0]['label']" -> "fields[0].label"
    """
    parts: List[str] = []
    for key, index in _PATH_TOKEN_PATTERN.findall(str(path)):
        if index:
            if parts:
                parts[-1] += f"[{index}]"
            else:
                parts.append(f"[{index}]")
        else:
            parts.append(key)
    return ".".join(parts) if parts else "root"


def diff_schemas(original: FormSchema, modified: FormSchema) -> Dict[str, Dict[str, Any]]:
    """DeepDiff of two schemas in their persisted representation."""
    return calculate_diff(original.to_storage_dict(), modified.to_storage_dict())


def diff_field(original: FormField, modified: FormField) -> Dict[str, Dict[str, Any]]:
    """DeepDiff of two versions of one field."""
    return calculate_diff(
        original.model_dump(by_alias=True, mode='json'),
        modified.model_dump(by_alias=True, mode='json'),
    )


def get_field_changes(original: FormSchema, modified: FormSchema) -> Dict[str, Any]:
    """
    Summarize field-level changes between two versions of a form.

    Args:
        original: Last saved version
        modified: Version being edited

    Returns:
        Dictionary with added/removed/modified field ids, whether the
        display order changed and whether the form was renamed
    """
    original_fields = {field.id: field for field in original.fields}
    modified_fields = {field.id: field for field in modified.fields}

    added = [field_id for field_id in modified_fields if field_id not in original_fields]
    removed = [field_id for field_id in original_fields if field_id not in modified_fields]
    changed = [
        field_id for field_id, field in modified_fields.items()
        if field_id in original_fields and has_changes(diff_field(original_fields[field_id], field))
    ]

    common_before = [field_id for field_id in original.field_ids() if field_id in modified_fields]
    common_after = [field_id for field_id in modified.field_ids() if field_id in original_fields]

    return {
        'added': added,
        'removed': removed,
        'modified': changed,
        'reordered': common_before != common_after,
        'renamed': original.name != modified.name,
    }


def describe_changes(diff: Dict[str, Any], limit: Optional[int] = None) -> List[str]:
    """
    Human-readable lines for a diff, one per changed path.

    Args:
        diff: Diff dictionary from calculate_diff
        limit: Maximum number of lines to return

    Returns:
        List of description strings
    """
    labels = {
        'values_changed': 'Changed',
        'type_changes': 'Changed',
        'dictionary_item_added': 'Added',
        'iterable_item_added': 'Added',
        'dictionary_item_removed': 'Removed',
        'iterable_item_removed': 'Removed',
    }

    lines = []
    for change_type in _CHANGE_TYPES:
        for path, detail in diff.get(change_type, {}).items():
            line = f"{labels[change_type]}: {clean_path(path)}"
            if isinstance(detail, dict) and 'old_value' in detail and 'new_value' in detail:
                line += f" ({detail['old_value']!r} -> {detail['new_value']!r})"
            lines.append(line)

    if limit is not None:
        lines = lines[:limit]
    return lines
