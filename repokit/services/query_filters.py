from __future__ import annotations

import logging
import operator
from collections.abc import Iterable, Mapping
from typing import Any, Callable

from sqlalchemy import inspect, literal_column
from sqlalchemy.orm import Query

from repokit.core.config import settings
from repokit.core.errors import InvalidFilterExpression

_LOG = logging.getLogger("repokit.filters")

RESERVED_KEYS = ("order", "limit", "offset", "group")
OPERATOR_DELIMITER = ":"

# Operator tokens accepted after "column:" mapped to the SQL comparison they stand for.
EXPRESSION = {
    "eq": "=",
    "neq": "!=",
    "ne": "!=",
    "gt": ">",
    "egt": ">=",
    "gte": ">=",
    "ge": ">=",
    "lt": "<",
    "le": "<=",
    "lte": "<=",
    "elt": "<=",
    "like": "LIKE",
    "not_like": "NOT LIKE",
    "not like": "NOT LIKE",
}

_COMPARATORS: dict[str, Callable[[Any, Any], Any]] = {
    "=": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "LIKE": lambda col, value: col.like(value),
    "NOT LIKE": lambda col, value: col.not_like(value),
}


def _list_value(key: str, value) -> list:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, Mapping):
        raise InvalidFilterExpression(key, "expected a list of values")
    if isinstance(value, Iterable):
        return list(value)
    return [value]


def _bounds(key: str, value) -> tuple[Any, Any]:
    if isinstance(value, str):
        value = [part.strip() for part in value.split(",")]
    if isinstance(value, Mapping) or not isinstance(value, Iterable):
        raise InvalidFilterExpression(key, "expected exactly two bounds")
    items = list(value)
    if len(items) != 2:
        raise InvalidFilterExpression(key, f"expected exactly two bounds, got {len(items)}")
    return items[0], items[1]


def _where_in(col, key: str, value):
    return col.in_(_list_value(key, value))


def _where_not_in(col, key: str, value):
    return col.not_in(_list_value(key, value))


def _where_between(col, key: str, value):
    low, high = _bounds(key, value)
    return col.between(low, high)


def _where_not_between(col, key: str, value):
    low, high = _bounds(key, value)
    return ~col.between(low, high)


# Operators that expect a sequence value and need their own builder call.
COMPOSITE_OPERATORS: dict[str, Callable[[Any, str, Any], Any]] = {
    "in": _where_in,
    "not_in": _where_not_in,
    "not in": _where_not_in,
    "between": _where_between,
    "not_between": _where_not_between,
    "not between": _where_not_between,
}


def _strict(strict: bool | None) -> bool:
    return settings.STRICT_FILTERS if strict is None else bool(strict)


def primary_key_name(model) -> str:
    mapper = inspect(model)
    return mapper.get_property_by_column(mapper.primary_key[0]).key


def resolve_column(model, name: str, *, key: str | None = None, strict: bool | None = None):
    """Map a filter/order column name to the model attribute.

    ``"<table>.<column>"`` is accepted for the model's own table. Names that
    are not mapped columns are handed to the database as a literal column
    unless strict filtering is enabled.
    """
    mapper = inspect(model)
    attr_name = str(name).strip()
    table_name = getattr(model, "__tablename__", None)
    if table_name and attr_name.startswith(f"{table_name}."):
        attr_name = attr_name[len(table_name) + 1 :]
    if attr_name in mapper.column_attrs:
        return getattr(model, attr_name)
    if _strict(strict):
        raise InvalidFilterExpression(key or attr_name, f'unknown column "{name}"')
    return literal_column(str(name).strip())


def parse_order(order) -> list[tuple[str, str]]:
    """Parse ``"id desc, name"`` into ``[("id", "desc"), ("name", "asc")]``."""
    if not isinstance(order, str):
        order = ",".join(str(item) for item in order)
    rs: list[tuple[str, str]] = []
    for item in order.split(","):
        parts = item.split()
        if not parts:
            continue
        if len(parts) > 2:
            raise InvalidFilterExpression("order", f'cannot parse "{item.strip()}"')
        direction = parts[1].lower() if len(parts) == 2 else "asc"
        if direction not in {"asc", "desc"}:
            raise InvalidFilterExpression("order", f'unknown direction "{parts[1]}"')
        rs.append((parts[0], direction))
    return rs


def _group_names(group) -> list[str]:
    if isinstance(group, str):
        return [part.strip() for part in group.split(",") if part.strip()]
    return [str(part) for part in group]


def _as_int(key: str, value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidFilterExpression(key, "expected an integer")


def normalize_filters(model, filters) -> dict[str, Any]:
    if filters is None:
        return {}
    if isinstance(filters, Mapping):
        return {str(key): value for key, value in filters.items()}
    if isinstance(filters, (list, tuple, set, frozenset)):
        if not filters:
            return {}
        raise InvalidFilterExpression("filters", "expected a mapping or a primary key value")
    return {primary_key_name(model): filters}


def build_predicate(model, key: str, value, *, strict: bool | None = None):
    if OPERATOR_DELIMITER not in key:
        return resolve_column(model, key, key=key, strict=strict) == value

    field, _, exp = key.partition(OPERATOR_DELIMITER)
    exp = exp.strip()
    if not field.strip():
        raise InvalidFilterExpression(key, "missing column name")
    if not exp:
        raise InvalidFilterExpression(key, "missing operator")
    col = resolve_column(model, field, key=key, strict=strict)

    composite = COMPOSITE_OPERATORS.get(exp)
    if composite is not None:
        return composite(col, key, value)

    symbol = EXPRESSION.get(exp)
    if symbol is not None:
        return _COMPARATORS[symbol](col, value)

    if _strict(strict):
        raise InvalidFilterExpression(key, f'unknown operator "{exp}"')
    _LOG.warning("filter %r uses unknown operator %r, passing it to the database as is", key, exp)
    return col.op(exp)(value)


def apply_filters(q: Query, model, filters, *, strict: bool | None = None) -> Query:
    pending = normalize_filters(model, filters)
    order, limit, offset, group = (pending.pop(name, None) for name in RESERVED_KEYS)

    if order is not None:
        for field, direction in parse_order(order):
            col = resolve_column(model, field, key="order", strict=strict)
            q = q.order_by(col.desc() if direction == "desc" else col.asc())
    group_names = _group_names(group) if group is not None else []
    if group_names:
        q = q.group_by(*[resolve_column(model, name, key="group", strict=strict) for name in group_names])

    for key, value in pending.items():
        q = q.filter(build_predicate(model, key, value, strict=strict))

    # Query refuses filter()/order_by() once LIMIT/OFFSET is set, so these go last.
    if limit is not None:
        q = q.limit(_as_int("limit", limit))
    if offset is not None:
        q = q.offset(_as_int("offset", offset))
    return q
