from fastapi import Request

from repokit.core.config import settings
from repokit.db.session import get_db
from repokit.schemas.query import PageParams

__all__ = ["get_db", "get_page_params"]


def _int_param(raw: str | None, default: int) -> int:
    text = str(raw or "").strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def get_page_params(request: Request) -> PageParams:
    page_size = _int_param(request.query_params.get(settings.PAGE_SIZE_PARAM), settings.PAGE_SIZE_DEFAULT)
    page = _int_param(request.query_params.get(settings.PAGE_NUMBER_PARAM), 1)
    return PageParams(page_size=settings.clamp_page_size(page_size), page=max(page, 1))
