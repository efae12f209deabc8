"""Per-table field normalization applied before rows reach the hub."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping

from .schema import get_table_spec


def uppercase_fields(row: Mapping[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """Return a copy of ``row`` with the non-empty string ``fields`` uppercased."""
    processed = dict(row)
    for name in fields:
        value = processed.get(name)
        if value and isinstance(value, str):
            processed[name] = value.upper()
    return processed


def transform(table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
    spec = get_table_spec(table)
    if spec is None:
        return dict(row)
    return uppercase_fields(row, spec.uppercase_fields)
