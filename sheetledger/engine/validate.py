"""
Input validation for store writes.

Checks caller input against a CollectionDef before any storage call:
- Unknown keys suggest similar valid keys
- Mandatory keys must be present and non-blank on create
- Values are coerced by their FieldKind
- Update accepts editable keys only
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any, Dict, List, Mapping

from ..errors import ValidationError
from ..schema.types import CollectionDef
from ..storage.base import Cell, cell_text

RECEIVED_DELTA = "received_delta"


def _is_blank(value: Any) -> bool:
    return value is None or cell_text(value) == ""


def _unknown_key_errors(collection: CollectionDef, keys: List[str], allowed: List[str]) -> List[str]:
    errors = []
    for key in keys:
        if key in allowed:
            continue
        suggestions = get_close_matches(key, allowed, n=3)
        if suggestions:
            errors.append(f"Unknown field '{key}'. Did you mean: {suggestions}?")
        else:
            errors.append(f"Unknown field '{key}' for {collection.name}")
    return errors


def _coerce(collection: CollectionDef, fields: Mapping[str, Any], errors: List[str]) -> Dict[str, Cell]:
    values: Dict[str, Cell] = {}
    for key, value in fields.items():
        binding = collection.get_field(key)
        if binding is None:
            continue
        if _is_blank(value):
            values[key] = ""
            continue
        try:
            values[key] = binding.coerce(value)
        except ValidationError as e:
            errors.append(e.message)
    return values


def validate_create(collection: CollectionDef, fields: Mapping[str, Any]) -> Dict[str, Cell]:
    """Validate and coerce create input.

    Returns:
        Field key -> coerced cell value, defaults applied

    Raises:
        ValidationError: Listing every problem found
    """
    errors = _unknown_key_errors(collection, list(fields), collection.field_keys)

    missing = [
        key for key in collection.required_keys if _is_blank(fields.get(key))
    ]
    if missing:
        errors.append(f"Missing required fields: {', '.join(missing)}")

    values = _coerce(collection, fields, errors)

    received = values.get("received")
    if isinstance(received, (int, float)) and received < 0:
        errors.append("Field 'received' cannot be negative")

    if errors:
        raise ValidationError(
            f"Validation failed for {collection.name}: {'; '.join(errors)}",
            field_name=missing[0] if missing else None,
            errors=errors,
        )

    for binding in collection.fields:
        if _is_blank(values.get(binding.key)) and binding.default is not None:
            values[binding.key] = binding.default
    return values


def validate_update(collection: CollectionDef, fields: Mapping[str, Any]) -> Dict[str, Cell]:
    """Validate and coerce update input (received_delta excluded).

    Raises:
        ValidationError: Listing every problem found
    """
    editable = [f.key for f in collection.fields if f.editable]
    keys = [k for k in fields if k != RECEIVED_DELTA]

    errors = []
    for key in keys:
        binding = collection.get_field(key)
        if binding is not None and not binding.editable:
            errors.append(f"Field '{key}' cannot be changed by update")
    errors.extend(
        _unknown_key_errors(
            collection,
            [k for k in keys if collection.get_field(k) is None],
            editable,
        )
    )

    values = _coerce(collection, {k: fields[k] for k in keys}, errors)

    blanked = [
        key for key in collection.required_keys if key in values and values[key] == ""
    ]
    if blanked:
        errors.append(f"Required fields cannot be blank: {', '.join(blanked)}")

    if errors:
        raise ValidationError(
            f"Validation failed for {collection.name}: {'; '.join(errors)}",
            errors=errors,
        )
    return values
