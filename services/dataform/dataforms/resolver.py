"""Map human-authored spreadsheet headers onto schema fields."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping

from .schema import Schema

DEFAULT_ALIASES: Dict[str, List[str]] = {
    "name": ["Name", "name", "NAME", "Full Name", "Full name", "full name"],
    "age": ["Age", "age", "AGE", "Age (Years)", "Age (years)", "age (years)"],
    "number": [
        "Number",
        "Phone",
        "number",
        "phone",
        "NUMBER",
        "PHONE",
        "Phone Number",
        "Phone number",
        "phone number",
        "Mobile",
        "mobile",
    ],
    "email": ["Email", "email", "EMAIL", "Email Address", "Email address", "email address"],
    "hobby": ["Hobby", "hobby", "HOBBY"],
}


def _prepend(aliases: List[str], *candidates: str | None) -> None:
    # Candidates are given lowest priority first; each one lands at the front.
    for candidate in candidates:
        if candidate and candidate not in aliases:
            aliases.insert(0, candidate)


def aliases_for(name: str, schema: Schema) -> List[str]:
    """Return the header aliases for ``name``, highest priority first."""

    aliases = list(DEFAULT_ALIASES.get(name, []))
    definition = schema.get_field(name)
    if definition is not None:
        _prepend(aliases, definition.name, definition.label)
    column = schema.get_column(name)
    if column is not None:
        _prepend(aliases, column.name, column.label)
    return aliases


def build_alias_table(schema: Schema) -> Dict[str, List[str]]:
    table = {definition.name: aliases_for(definition.name, schema) for definition in schema.fields}
    for column in schema.columns:
        if column.name not in table:
            table[column.name] = aliases_for(column.name, schema)
    return table


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def resolve_value(row: Mapping[str, Any], aliases: List[str]) -> Any:
    for alias in aliases:
        if alias in row and not is_blank(row[alias]):
            return row[alias]
    return ""


def resolve(
    row: Mapping[str, Any], schema: Schema, table: Dict[str, List[str]] | None = None
) -> Dict[str, Any]:
    """Resolve every schema field against one raw spreadsheet row.

    Fields with no matching, non-blank header resolve to ``""``.
    """

    if table is None:
        table = build_alias_table(schema)
    return {name: resolve_value(row, aliases) for name, aliases in table.items()}
