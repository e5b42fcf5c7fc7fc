from __future__ import annotations

import threading
import uuid

import pytest

from entity_store.db.dynamodb.errors import CodecError, ErrorKind, StoreError
from entity_store.models import Entity
from entity_store.repositories.entities_repo import (
    delete_entity,
    get_entity,
    insert_entity,
    list_entities,
    update_entity,
)

from fakes import client_error


def test_entity_lifecycle_scenario(table, make_draft):
    created = insert_entity(table, draft=make_draft(fullname="A"))
    assert created.fullname == "A"
    assert created.id

    updated = update_entity(table, entity_id=created.id, draft=make_draft(fullname="B"))
    assert updated == Entity(**{**created.model_dump(), "fullname": "B"})

    assert update_entity(table, entity_id="nonexistent-id", draft=make_draft(fullname="C")) is None

    deleted = delete_entity(table, entity_id=created.id)
    assert deleted is not None
    assert deleted.id == created.id
    assert deleted.fullname == "B"

    assert get_entity(table, entity_id=created.id) is None


def test_missing_ids_return_none_not_errors(table, make_draft):
    missing = str(uuid.uuid4())
    assert get_entity(table, entity_id=missing) is None
    assert delete_entity(table, entity_id=missing) is None
    assert update_entity(table, entity_id=missing, draft=make_draft()) is None


def test_update_on_missing_id_does_not_create_item(table, fake_client, make_draft):
    assert update_entity(table, entity_id="ghost", draft=make_draft()) is None
    assert fake_client.items == {}


def test_insert_generates_fresh_unique_ids(table, make_draft):
    ids = {insert_entity(table, draft=make_draft()).id for _ in range(50)}
    assert len(ids) == 50
    for i in ids:
        uuid.UUID(i)


def test_insert_then_get_round_trips(table, make_draft):
    created = insert_entity(table, draft=make_draft(authoredRecipes=[], likedRecipes=["x", "y"]))
    assert get_entity(table, entity_id=created.id) == created


def test_insert_is_an_unconditional_put(table, fake_client, make_draft):
    created = insert_entity(table, draft=make_draft())
    put = fake_client.last_call("PutItem")
    assert "ConditionExpression" not in put
    assert put["Item"]["id"] == {"S": created.id}
    assert put["Item"]["authoredRecipes"] == {"L": [{"S": "r-1"}, {"S": "r-2"}]}


def test_insert_accepts_plain_dict_draft(table):
    created = insert_entity(
        table,
        draft={"fullname": "Grace", "email": "g@example.com", "authoredRecipes": [], "likedRecipes": []},
    )
    assert created.fullname == "Grace"


def test_update_replaces_every_non_key_field(table, make_draft):
    created = insert_entity(table, draft=make_draft())
    new = make_draft(fullname="N", email="n@example.com", authoredRecipes=["z"], likedRecipes=[])
    updated = update_entity(table, entity_id=created.id, draft=new)
    assert updated == Entity(id=created.id, **new.model_dump())
    assert get_entity(table, entity_id=created.id) == updated


def test_update_is_a_single_conditional_write(table, fake_client, make_draft):
    created = insert_entity(table, draft=make_draft())
    fake_client.calls.clear()

    update_entity(table, entity_id=created.id, draft=make_draft(fullname="B"))

    assert [op for op, _ in fake_client.calls] == ["UpdateItem"]
    req = fake_client.last_call("UpdateItem")
    assert req["ReturnValues"] == "ALL_NEW"
    assert req["Key"] == {"id": {"S": created.id}}
    cond_name, cond_value = req["ConditionExpression"].split(" = ")
    assert req["ExpressionAttributeNames"][cond_name] == "id"
    assert req["ExpressionAttributeValues"][cond_value] == {"S": created.id}
    set_names = {
        req["ExpressionAttributeNames"][clause.split(" = ")[0]]
        for clause in req["UpdateExpression"].removeprefix("SET ").split(", ")
    }
    assert set_names == {"fullname", "email", "authoredRecipes", "likedRecipes"}


def test_update_propagates_non_conditional_failures(table, fake_client, make_draft):
    created = insert_entity(table, draft=make_draft())
    fake_client.fail_next("UpdateItem", client_error("ProvisionedThroughputExceededException", "UpdateItem"))

    with pytest.raises(StoreError) as ei:
        update_entity(table, entity_id=created.id, draft=make_draft(fullname="B"))
    assert ei.value.kind is ErrorKind.THROTTLED
    assert ei.value.retryable is True


def test_delete_twice_returns_none_second_time(table, make_draft):
    created = insert_entity(table, draft=make_draft())
    assert delete_entity(table, entity_id=created.id) == created
    assert delete_entity(table, entity_id=created.id) is None


def test_empty_id_is_rejected(table, make_draft):
    with pytest.raises(ValueError):
        get_entity(table, entity_id="")
    with pytest.raises(ValueError):
        update_entity(table, entity_id="  ", draft=make_draft())


def test_malformed_stored_item_is_a_codec_error(table, fake_client):
    fake_client.items["bad"] = {"id": {"S": "bad"}, "fullname": {"S": "only a name"}}
    with pytest.raises(CodecError):
        get_entity(table, entity_id="bad")


def test_get_wraps_transport_failures(table, fake_client):
    fake_client.fail_next("GetItem", client_error("AccessDeniedException", "GetItem"))
    with pytest.raises(StoreError) as ei:
        get_entity(table, entity_id="abc")
    assert ei.value.kind is ErrorKind.ACCESS_DENIED
    assert ei.value.operation == "GetItem"
    assert ei.value.key == {"id": "abc"}
    assert ei.value.aws_request_id == "req-fake-1"


def test_list_spans_many_pages_without_gaps_or_duplicates(table, fake_client, make_draft):
    created = [insert_entity(table, draft=make_draft(fullname=f"n{i}")) for i in range(7)]

    listed = list_entities(table, page_size=2)

    assert fake_client.count("Scan") >= 3
    assert len(listed) == len(created)
    assert {e.id for e in listed} == {e.id for e in created}
    assert sorted(listed, key=lambda e: e.id) == sorted(created, key=lambda e: e.id)


def test_list_follows_page_boundary_that_ends_exactly(table, fake_client, make_draft):
    for i in range(4):
        insert_entity(table, draft=make_draft(fullname=f"n{i}"))

    listed = list_entities(table, page_size=2)

    # 2 full pages, then an empty page with no continuation key.
    assert fake_client.count("Scan") == 3
    assert len(listed) == 4


def test_list_empty_table(table):
    assert list_entities(table) == []


def test_list_failure_discards_partial_results(table, fake_client, make_draft):
    for i in range(5):
        insert_entity(table, draft=make_draft(fullname=f"n{i}"))

    original_scan = fake_client.scan
    seen = {"n": 0}

    def _scan(**kwargs):
        seen["n"] += 1
        if seen["n"] == 2:
            raise client_error("InternalServerError", "Scan")
        return original_scan(**kwargs)

    fake_client.scan = _scan

    with pytest.raises(StoreError) as ei:
        list_entities(table, page_size=2)
    assert ei.value.kind is ErrorKind.UNAVAILABLE


def test_list_excludes_deleted_entities(table, make_draft):
    keep = insert_entity(table, draft=make_draft(fullname="keep"))
    gone = insert_entity(table, draft=make_draft(fullname="gone"))
    delete_entity(table, entity_id=gone.id)

    assert list_entities(table, page_size=1) == [keep]


@pytest.mark.parametrize("attempt", range(20))
def test_concurrent_update_and_delete_have_one_winner(table, make_draft, attempt):
    original = insert_entity(table, draft=make_draft(fullname="before"))
    barrier = threading.Barrier(2)
    results: dict[str, Entity | None] = {}

    def _update():
        barrier.wait()
        results["update"] = update_entity(table, entity_id=original.id, draft=make_draft(fullname="after"))

    def _delete():
        barrier.wait()
        results["delete"] = delete_entity(table, entity_id=original.id)

    threads = [threading.Thread(target=_update), threading.Thread(target=_delete)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert results["delete"] is not None
    if results["update"] is None:
        # Delete won: it removed the original and the update found nothing.
        assert results["delete"] == original
    else:
        # Update won: the delete removed the updated entity, not the original.
        assert results["update"].fullname == "after"
        assert results["delete"] == results["update"]
    assert get_entity(table, entity_id=original.id) is None
