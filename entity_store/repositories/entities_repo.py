"""
Entity repository: CRUD + list over the entities table.

Every function takes the table handle explicitly and returns `None` when the
targeted entity does not exist; errors are reserved for real failures.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping

from boto3.dynamodb.conditions import Attr
from pydantic import ValidationError

from ..db.dynamodb.deadline import Deadline
from ..db.dynamodb.errors import CodecError
from ..db.dynamodb.expressions import build_set_update
from ..db.dynamodb.table import DynamoTable, WriteStatus
from ..models import Entity, EntityDraft, EntityPage
from ..observability.logging import get_logger


log = get_logger("entity_store.entities")

KEY_ATTRIBUTE = "id"


def new_entity_id() -> str:
    return str(uuid.uuid4())


def entity_key(entity_id: str) -> dict[str, str]:
    eid = str(entity_id or "").strip()
    if not eid:
        raise ValueError("entity_id is required")
    return {KEY_ATTRIBUTE: eid}


def _as_draft(draft: EntityDraft | Mapping[str, Any]) -> EntityDraft:
    if isinstance(draft, EntityDraft):
        return draft
    return EntityDraft.model_validate(dict(draft))


def _to_entity(item: dict[str, Any] | None) -> Entity | None:
    if not item:
        return None
    try:
        return Entity.model_validate(item)
    except ValidationError as e:
        raise CodecError(
            message=f"Stored item is not a valid entity: {e.error_count()} error(s)",
            operation="Unmarshal",
            key={KEY_ATTRIBUTE: item.get(KEY_ATTRIBUTE)},
            cause=e,
        ) from e


def get_entity(table: DynamoTable, *, entity_id: str, deadline: Deadline | None = None) -> Entity | None:
    key = entity_key(entity_id)
    item = table.get_item(key=key, deadline=deadline)
    if item is None:
        log.info("entity_not_found", entity_id=key[KEY_ATTRIBUTE])
        return None
    return _to_entity(item)


def list_entities(
    table: DynamoTable,
    *,
    page_size: int | None = None,
    deadline: Deadline | None = None,
) -> list[Entity]:
    """
    Scan the whole table, following continuation keys until exhausted.

    Cost grows with table size. A failing page discards everything collected
    so far; there is no partial result.
    """
    out: list[Entity] = []
    pages = 0
    for page in table.scan(page_size=page_size, deadline=deadline):
        pages += 1
        for item in page.items:
            ent = _to_entity(item)
            if ent is not None:
                out.append(ent)
    log.info("entities_listed", count=len(out), pages=pages)
    return out


def list_entities_page(
    table: DynamoTable,
    *,
    limit: int = 50,
    next_token: str | None = None,
    deadline: Deadline | None = None,
) -> EntityPage:
    pg = table.scan_token_page(limit=limit, next_token=next_token, deadline=deadline)
    items = [e for e in (_to_entity(it) for it in pg.items) if e is not None]
    return EntityPage(items=items, nextToken=pg.next_token)


def insert_entity(
    table: DynamoTable,
    *,
    draft: EntityDraft | Mapping[str, Any],
    deadline: Deadline | None = None,
) -> Entity:
    """
    Write a new entity under a freshly generated id.

    The put is unconditional and the returned entity is the locally composed
    value; the store is not read back.
    """
    entity = Entity.from_draft(new_entity_id(), _as_draft(draft))
    table.put_item(item=entity.model_dump(), deadline=deadline)
    log.info("entity_inserted", entity_id=entity.id)
    return entity


def delete_entity(table: DynamoTable, *, entity_id: str, deadline: Deadline | None = None) -> Entity | None:
    key = entity_key(entity_id)
    outcome = table.delete_item(key=key, return_values="ALL_OLD", deadline=deadline)
    if not outcome.attributes:
        log.info("entity_delete_not_found", entity_id=key[KEY_ATTRIBUTE])
        return None
    log.info("entity_deleted", entity_id=key[KEY_ATTRIBUTE])
    return _to_entity(outcome.attributes)


def update_entity(
    table: DynamoTable,
    *,
    entity_id: str,
    draft: EntityDraft | Mapping[str, Any],
    deadline: Deadline | None = None,
) -> Entity | None:
    """
    Replace every non-key attribute of an existing entity.

    The existence check is part of the write itself (`id = :id` condition), so
    an update can never recreate an entity that a concurrent delete removed.
    A failed condition means the entity does not exist and yields None.
    """
    key = entity_key(entity_id)
    fields = _as_draft(draft).model_dump()
    update = build_set_update(fields, condition=Attr(KEY_ATTRIBUTE).eq(key[KEY_ATTRIBUTE]))

    outcome = table.update_item(key=key, update=update, return_values="ALL_NEW", deadline=deadline)
    if outcome.status is WriteStatus.CONDITION_FAILED:
        log.info("entity_update_not_found", entity_id=key[KEY_ATTRIBUTE])
        return None
    if not outcome.attributes:
        return None
    log.info("entity_updated", entity_id=key[KEY_ATTRIBUTE])
    return _to_entity(outcome.attributes)
