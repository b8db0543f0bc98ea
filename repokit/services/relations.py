from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping

from sqlalchemy import inspect
from sqlalchemy.orm.interfaces import MANYTOMANY, MANYTOONE

from repokit.core.errors import RelationNotFound


class RelationKind(str, Enum):
    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    BELONGS_TO_MANY = "belongs_to_many"


@dataclass(frozen=True)
class RelationInfo:
    """Join metadata for one relationship of a mapped class.

    ``local_keys`` are attributes of the owning model that have to be loaded
    so eager-loaded rows can be matched back to it; ``foreign_keys`` are the
    attributes the related model must load for the same reason.
    """

    name: str
    kind: RelationKind
    target: Any
    local_keys: tuple[str, ...]
    foreign_keys: tuple[str, ...]


def _attr_keys(mapper, columns) -> tuple[str, ...]:
    keys: list[str] = []
    for col in columns:
        key = mapper.get_property_by_column(col).key
        if key not in keys:
            keys.append(key)
    return tuple(keys)


def _relation_info(owner_mapper, prop) -> RelationInfo:
    target_mapper = prop.mapper
    if prop.direction is MANYTOMANY:
        kind = RelationKind.BELONGS_TO_MANY
        local_cols = [local for local, _ in prop.synchronize_pairs]
        remote_cols = [target for target, _ in prop.secondary_synchronize_pairs]
    else:
        if prop.direction is MANYTOONE:
            kind = RelationKind.BELONGS_TO
        else:
            kind = RelationKind.HAS_MANY if prop.uselist else RelationKind.HAS_ONE
        local_cols = [local for local, _ in prop.local_remote_pairs]
        remote_cols = [remote for _, remote in prop.local_remote_pairs]
    return RelationInfo(
        name=prop.key,
        kind=kind,
        target=target_mapper.class_,
        local_keys=_attr_keys(owner_mapper, local_cols),
        foreign_keys=_attr_keys(target_mapper, remote_cols),
    )


@lru_cache(maxsize=None)
def relation_registry(model) -> Mapping[str, RelationInfo]:
    mapper = inspect(model)
    return MappingProxyType({prop.key: _relation_info(mapper, prop) for prop in mapper.relationships})


def resolve_relation(model, name: str) -> RelationInfo:
    info = relation_registry(model).get(name)
    if info is None:
        raise RelationNotFound(model, name)
    return info
