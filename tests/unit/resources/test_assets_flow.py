"""
Asset hierarchy writes against the fake store.
"""

import pytest

from resource_writer import ErrorKind, ExternalId, InternalId, ResourceType, RetryPolicy, UpsertOptions
from resource_writer.models import AssetCreate, AssetUpdate, AssetUpdateItem, FieldUpdate
from resource_writer.resources import ensure_assets, get_or_create_assets, update_assets, upsert_assets


def asset(external_id, parent=None, **kwargs):
    return AssetCreate(external_id=external_id, name=external_id, parent_external_id=parent, **kwargs)


@pytest.mark.asyncio
async def test_parents_are_created_first(settings, assets_client):
    child = asset("child", parent="root")
    grandchild = asset("grandchild", parent="child")
    root = asset("root")

    result = await ensure_assets(assets_client, [grandchild, child, root], chunk_size=1, settings=settings)

    assert result.all_good
    assert [a.external_id for a in result.successes] == ["root", "child", "grandchild"]
    assert assets_client.requests == [[root], [child], [grandchild]]


@pytest.mark.asyncio
async def test_small_hierarchy_written_in_one_request(settings, assets_client):
    result = await ensure_assets(
        assets_client, [asset("child", parent="root"), asset("root")], settings=settings
    )

    assert result.all_good
    assert len(assets_client.requests) == 1


@pytest.mark.asyncio
async def test_every_missing_parent_found(settings, assets_client):
    assets_client.add(asset("existing"))
    orphan_1 = asset("orphan-1", parent="missing-1")
    orphan_2 = asset("orphan-2", parent="missing-2")
    adopted = asset("adopted", parent="existing")

    result = await ensure_assets(
        assets_client,
        [asset("root"), asset("child", parent="root"), orphan_1, orphan_2, adopted],
        settings=settings,
    )

    assert sorted(a.external_id for a in result.successes) == ["adopted", "child", "root"]
    [error] = result.errors
    assert error.kind == ErrorKind.ITEM_MISSING
    assert error.resource == ResourceType.PARENT_EXTERNAL_ID
    assert error.affected == {ExternalId("missing-1"), ExternalId("missing-2")}
    assert error.skipped == [orphan_1, orphan_2]
    # parents in the batch are never looked up
    assert {i for ids in assets_client.retrieved for i in ids} == {ExternalId("missing-2"), ExternalId("existing")}
    assert len(assets_client.requests) == 2


@pytest.mark.asyncio
async def test_cycle_rejected(settings, assets_client):
    with pytest.raises(ValueError):
        await ensure_assets(assets_client, [asset("a", parent="b"), asset("b", parent="a")], settings=settings)
    assert assets_client.requests == []


@pytest.mark.asyncio
async def test_get_or_create_assets(settings, assets_client):
    assets_client.add(asset("a"))

    result = await get_or_create_assets(
        assets_client, ["a", "b"], lambda ids: [asset(x) for x in ids], settings=settings
    )

    assert [a.external_id for a in result.successes] == ["a", "b"]
    assert assets_client.requests == [[asset("b")]]


@pytest.mark.asyncio
async def test_upsert_keeps_parent_and_adds_labels(settings, assets_client):
    assets_client.add(asset("root"))
    assets_client.add(asset("a", parent="root", labels=["x"], description="old"))

    result = await upsert_assets(
        assets_client, [AssetCreate(external_id="a", name="renamed", labels=["y"])], settings=settings
    )

    [updated] = result.successes
    assert updated.name == "renamed"
    assert updated.parent_external_id == "root"
    assert updated.labels == ["x", "y"]
    assert updated.description is None

    result = await upsert_assets(
        assets_client,
        [AssetCreate(external_id="a", name="renamed", labels=["z"])],
        UpsertOptions(replace_labels=True),
        settings=settings,
    )
    assert result.successes[0].labels == ["z"]


@pytest.mark.asyncio
async def test_update_moving_assets_between_hierarchies_is_skipped(settings, assets_client):
    for external_id in ["r1", "r2"]:
        assets_client.add(asset(external_id))
    for external_id in ["a", "b", "c", "d"]:
        assets_client.add(asset(external_id, parent="r1"))
    rename_a = AssetUpdateItem(external_id="a", update=AssetUpdate(name=FieldUpdate(set="A")))
    move_b = AssetUpdateItem(external_id="b", update=AssetUpdate(parent_external_id=FieldUpdate(set="r2")))
    rename_c = AssetUpdateItem(external_id="c", update=AssetUpdate(name=FieldUpdate(set="C")))
    orphan_d = AssetUpdateItem(external_id="d", update=AssetUpdate(parent_id=FieldUpdate(set=999)))

    result = await update_assets(
        assets_client,
        [rename_a, move_b, rename_c, orphan_d],
        retry_policy=RetryPolicy.ON_ERROR,
        settings=settings,
    )

    assert [a.name for a in result.successes] == ["A", "C"]
    errors = {e.kind: e for e in result.errors}
    assert set(errors) == {ErrorKind.ILLEGAL_ITEM, ErrorKind.ITEM_MISSING}
    assert errors[ErrorKind.ILLEGAL_ITEM].resource == ResourceType.PARENT_ID
    assert errors[ErrorKind.ILLEGAL_ITEM].skipped == [move_b]
    assert errors[ErrorKind.ITEM_MISSING].resource == ResourceType.PARENT_ID
    assert errors[ErrorKind.ITEM_MISSING].affected == {InternalId(999)}
    assert errors[ErrorKind.ITEM_MISSING].skipped == [orphan_d]
    assert assets_client.requests[-1] == [rename_a, rename_c]
    assert assets_client.by_identity(ExternalId("b")).parent_external_id == "r1"


@pytest.mark.asyncio
async def test_update_within_hierarchy_is_written(settings, assets_client):
    for external_id, parent in [("root", None), ("x", "root"), ("y", "root")]:
        assets_client.add(asset(external_id, parent=parent))
    move = AssetUpdateItem(external_id="y", update=AssetUpdate(parent_external_id=FieldUpdate(set="x")))

    result = await update_assets(assets_client, [move], retry_policy=RetryPolicy.ON_ERROR, settings=settings)

    assert result.all_good
    assert result.successes[0].parent_external_id == "x"
    assert len(assets_client.requests) == 1
