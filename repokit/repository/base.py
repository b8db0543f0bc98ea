from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from sqlalchemy import inspect, select, tuple_
from sqlalchemy.orm import Query, Session

from repokit.core.config import settings
from repokit.schemas.query import PageParams
from repokit.services.projection import apply_projection
from repokit.services.query_filters import RESERVED_KEYS, apply_filters, normalize_filters

_LOG = logging.getLogger("repokit.repository")


def _has_id(value) -> bool:
    if isinstance(value, str):
        return value.strip() not in ("", "0")
    return bool(value)


class Repository:
    """CRUD over one mapped class driven by filter maps and field lists.

    Filters are either a primary key value or a mapping such as
    ``{"age:gt": 30, "name:like": "A%", "order": "id desc", "limit": 5}``.
    Fields list plain columns and eager-loaded relations with their own
    field lists, e.g. ``["flag", {"tags": ["label"]}]``.
    """

    model: Any = None

    def __init__(self, db: Session, model=None, *, autocommit: bool = True, strict_filters: bool | None = None):
        self.db = db
        if model is not None:
            self.model = model
        if self.model is None:
            raise TypeError(f"{type(self).__name__} needs a mapped model")
        self.autocommit = autocommit
        self.strict_filters = strict_filters

    def build_query(self, filters=None, fields=None) -> Query:
        """Return the configured, not yet executed query."""
        _LOG.debug(
            "build_query model=%s filters=%r fields=%r",
            self.model.__name__,
            filters,
            fields,
        )
        q = self.db.query(self.model)
        q = apply_filters(q, self.model, filters, strict=self.strict_filters)
        return apply_projection(q, self.model, fields)

    def fetch_one(self, filters=None, fields=None):
        return self.build_query(filters, fields).first()

    def fetch_all(self, filters=None, fields=None) -> list:
        return self.build_query(filters, fields).all()

    def fetch_page(
        self,
        filters=None,
        fields=None,
        *,
        page_size: int | None = None,
        page: int | None = None,
        params: PageParams | None = None,
    ) -> dict[str, Any]:
        size, number = self._page_window(page_size, page, params)
        q = self.build_query(filters, fields)
        # The page window replaces any limit/offset carried by the filters.
        q = q.limit(None).offset(None)
        total = q.count()
        rows = q.offset(size * (number - 1)).limit(size).all()
        return {"total": total, "rows": rows}

    def paginate(self, filters=None, fields=None, *, params: PageParams | None = None) -> dict[str, Any]:
        size, number = self._page_window(None, None, params)
        result = self.fetch_page(filters, fields, page_size=size, page=number)
        result["per_page"] = size
        result["current_page"] = number
        result["last_page"] = max(math.ceil(result["total"] / size), 1)
        return result

    def create(self, data: Mapping[str, Any]):
        entity = self.model(**dict(data))
        self.db.add(entity)
        self._finish()
        self.db.refresh(entity)
        return entity

    def update(self, filters, data: Mapping[str, Any]) -> int:
        affected = self._bulk_query(filters).update(dict(data), synchronize_session=False)
        self._finish()
        _LOG.info("update model=%s affected=%s", self.model.__name__, affected)
        return affected

    def delete(self, filters) -> int:
        affected = self._bulk_query(filters).delete(synchronize_session=False)
        self._finish()
        _LOG.info("delete model=%s affected=%s", self.model.__name__, affected)
        return affected

    def save(self, data: Mapping[str, Any], id=None):
        """Update the row with primary key ``id``, or create one when ``id`` is empty.

        Returns the affected row count on update and the new entity on create.
        ``None``, ``0``, ``""`` and ``"0"`` all count as empty, so ids taken
        straight from a request string behave like integer ids.
        """
        if _has_id(id):
            return self.update(id, data)
        return self.create(data)

    def _bulk_query(self, filters) -> Query:
        pending = normalize_filters(self.model, filters)
        if all(pending.get(name) is None for name in RESERVED_KEYS):
            return self.build_query(pending)
        # Bulk UPDATE/DELETE cannot carry ORDER BY, LIMIT, OFFSET or GROUP BY;
        # select the matching primary keys with them and target those rows.
        keys = inspect(self.model).primary_key
        inner = self.build_query(pending).with_entities(*keys).subquery()
        target = keys[0] if len(keys) == 1 else tuple_(*keys)
        return self.db.query(self.model).filter(target.in_(select(inner)))

    def _page_window(self, page_size, page, params: PageParams | None) -> tuple[int, int]:
        if params is not None:
            page_size = params.page_size if page_size is None else page_size
            page = params.page if page is None else page
        if page_size is None:
            page_size = settings.PAGE_SIZE_DEFAULT
        if page is None:
            page = 1
        return settings.clamp_page_size(page_size), max(int(page), 1)

    def _finish(self) -> None:
        if self.autocommit:
            self.db.commit()
        else:
            self.db.flush()
