from __future__ import annotations

from typing import Any


def _model_name(model: Any) -> str:
    return getattr(model, "__name__", None) or type(model).__name__


class RepositoryError(Exception):
    """Base class for errors raised while translating filters or projections."""


class RelationNotFound(RepositoryError, LookupError):
    def __init__(self, model: Any, relation: str):
        self.model = model
        self.relation = relation
        super().__init__(f'Relation "{relation}" is not defined on {_model_name(model)}')


class ColumnNotFound(RepositoryError, LookupError):
    def __init__(self, model: Any, column: str):
        self.model = model
        self.column = column
        super().__init__(f'Column "{column}" is not mapped on {_model_name(model)}')


class InvalidFilterExpression(RepositoryError, ValueError):
    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f'Invalid filter "{key}": {reason}')
