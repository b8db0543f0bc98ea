from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.orm import Query, load_only, selectinload

from repokit.core.errors import ColumnNotFound
from repokit.services.relations import resolve_relation

ALL_COLUMNS = "*"


def _entries(fields) -> list:
    if not fields:
        return []
    if isinstance(fields, (str, Mapping)):
        return [fields]
    return list(fields)


def split_fields(fields) -> tuple[list[str], list[tuple[str, Any]]]:
    """Split a field list into plain columns and ``(relation, nested_fields)`` pairs.

    Entries are column names or mappings of relation name to nested fields.
    Integer keys inside a mapping are positional, their value is a column.
    """
    columns: list[str] = []
    relations: list[tuple[str, Any]] = []
    for entry in _entries(fields):
        if isinstance(entry, Mapping):
            for key, value in entry.items():
                if isinstance(key, int):
                    columns.append(str(value).strip())
                else:
                    relations.append((str(key).strip(), value))
        else:
            columns.append(str(entry).strip())
    return columns, relations


def _projected_column(model, name: str):
    attr_name = name
    table_name = getattr(model, "__tablename__", None)
    if table_name and attr_name.startswith(f"{table_name}."):
        attr_name = attr_name[len(table_name) + 1 :]
    if attr_name not in inspect(model).column_attrs:
        raise ColumnNotFound(model, name)
    return attr_name


def build_load_options(model, fields) -> list:
    columns, relations = split_fields(fields)
    if not columns and not relations:
        return []

    # Resolve every relation before building anything so a bad name fails cleanly.
    resolved = [(resolve_relation(model, name), nested) for name, nested in relations]

    options = []
    join_keys: list[str] = []
    for info, nested in resolved:
        loader = selectinload(getattr(model, info.name))
        nested_entries = _entries(nested)
        if nested_entries:
            sub_options = build_load_options(info.target, [*nested_entries, *info.foreign_keys])
            if sub_options:
                loader = loader.options(*sub_options)
        options.append(loader)
        join_keys.extend(info.local_keys)

    if ALL_COLUMNS not in columns:
        selected: list[str] = []
        for name in [*columns, *join_keys]:
            attr_name = _projected_column(model, name)
            if attr_name not in selected:
                selected.append(attr_name)
        options.append(load_only(*[getattr(model, attr_name) for attr_name in selected]))
    return options


def apply_projection(q: Query, model, fields) -> Query:
    options = build_load_options(model, fields)
    if not options:
        return q
    return q.options(*options)
