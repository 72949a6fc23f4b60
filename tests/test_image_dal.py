import asyncio

import pytest

from dal.image_dal import ANY_FOLDER, FILE_ID_KEY_PREFIX, TELEGRAM_IMAGES_KEY
from models.image_record import ImageRecord
from utils.errors import ValidationError


def _record(name, category="general", folder_id=None, file_id=None, size=100):
    return ImageRecord(
        id=None,
        url=f"https://example.test/{name}",
        filename=name,
        category=category,
        folder_id=folder_id,
        external_file_id=file_id,
        size=size,
    )


def test_kv_primitives(kv):
    async def scenario():
        await kv.set("k", "v1")
        await kv.set("k", "v2")
        await kv.sadd("s", "a", "b", "a")
        await kv.zadd("z", "late", 20)
        await kv.zadd("z", "early", 10)
        await kv.hset("h", {"count": 1})
        counted = await kv.hincrby("h", "count", -5, floor=0)
        return (
            await kv.get("k"),
            await kv.mget(["k", "missing"]),
            await kv.smembers("s"),
            await kv.zrange("z"),
            await kv.zrange("z", rev=True),
            counted,
            await kv.delete("k", "s", "missing"),
            await kv.get("k"),
        )

    value, values, members, ascending, descending, counted, removed, after = asyncio.run(scenario())

    assert value == "v2"
    assert values == ["v2", None]
    assert members == ["a", "b"]
    assert ascending == ["early", "late"]
    assert descending == ["late", "early"]
    assert counted == 0
    assert removed == 2
    assert after is None


def test_create_assigns_increasing_ids_and_lists_newest_first(image_dal):
    async def scenario():
        first = await image_dal.create(_record("a.png"))
        second = await image_dal.create(_record("b.png"))
        return first, second, await image_dal.all_images()

    first, second, images = asyncio.run(scenario())

    assert int(second.id) > int(first.id)
    assert first.upload_date.endswith("Z")
    assert [img.id for img in images] == [second.id, first.id]


def test_list_images_paginates_and_filters(image_dal):
    async def scenario():
        for i in range(5):
            await image_dal.create(_record(f"cat{i}.png", category="cats"))
        await image_dal.create(_record("dog.png", category="dogs", folder_id="avatar"))
        return (
            await image_dal.list_images(page=2, limit=2),
            await image_dal.list_images(page=1, limit=10, category="cats"),
            await image_dal.list_images(page=1, limit=10, folder_id="avatar"),
            await image_dal.list_images(page=1, limit=10, folder_id=None),
            await image_dal.list_images(page=4, limit=2, folder_id=ANY_FOLDER),
        )

    page_two, cats, avatar, root, beyond = asyncio.run(scenario())

    assert [img.filename for img in page_two[0]] == ["cat3.png", "cat2.png"]
    assert page_two[1] == 6
    assert cats[1] == 5
    assert [img.filename for img in avatar[0]] == ["dog.png"]
    assert root[1] == 5
    assert beyond == ([], 6)


def test_stats_follow_create_and_delete_and_never_go_negative(image_dal):
    async def scenario():
        created = await image_dal.create(_record("a.png", size=300))
        await image_dal.create(_record("b.png", size=200))
        await image_dal.delete(created.id)
        after_delete = await image_dal.get_stats()
        await image_dal.recompute_stats()
        await image_dal.delete("does-not-exist")
        return after_delete, await image_dal.get_stats()

    after_delete, final = asyncio.run(scenario())

    assert after_delete == {"totalImages": 1, "totalSize": 200}
    assert final == {"totalImages": 1, "totalSize": 200}


def test_update_only_changes_mutable_fields(image_dal):
    async def scenario():
        created = await image_dal.create(_record("a.png", folder_id="avatar", file_id="F1"))
        updated = await image_dal.update(created.id, {
            "category": "travel",
            "description": None,
            "folder_id": None,
            "external_file_id": "HACK",
            "upload_date": "1970-01-01",
        })
        return created, updated, await image_dal.get_categories(), await image_dal.update("nope", {})

    created, updated, categories, missing = asyncio.run(scenario())

    assert updated.category == "travel"
    assert updated.folder_id is None
    assert updated.external_file_id == "F1"
    assert updated.upload_date == created.upload_date
    assert "travel" in categories
    assert missing is None


@pytest.mark.parametrize("field", ["category", "filename", "url"])
def test_update_rejects_blank_required_text(image_dal, field):
    async def scenario():
        created = await image_dal.create(_record("a.png", category="pets"))
        with pytest.raises(ValidationError):
            await image_dal.update(created.id, {field: "   "})
        return created, await image_dal.get(created.id)

    created, stored = asyncio.run(scenario())

    assert getattr(stored, field) == getattr(created, field)


def test_update_strips_category(image_dal):
    async def scenario():
        created = await image_dal.create(_record("a.png"))
        return await image_dal.update(created.id, {"category": "  travel "})

    assert asyncio.run(scenario()).category == "travel"


def test_put_overwrites_and_moves_index_entries(image_dal, kv):
    async def scenario():
        created = await image_dal.create(_record("a.png", file_id="OLD", size=100))
        replacement = ImageRecord(
            id=created.id,
            url="https://example.test/b",
            filename="b.png",
            external_file_id="NEW",
            size=250,
        )
        stored = await image_dal.put(replacement)
        return (
            created,
            stored,
            await kv.get(f"{FILE_ID_KEY_PREFIX}OLD"),
            await kv.get(f"{FILE_ID_KEY_PREFIX}NEW"),
            await image_dal.get_stats(),
        )

    created, stored, old_entry, new_entry, stats = asyncio.run(scenario())

    assert stored.upload_date == created.upload_date
    assert stored.description == ""
    assert old_entry is None
    assert new_entry == created.id
    assert stats == {"totalImages": 1, "totalSize": 250}


def test_external_file_id_is_unique(image_dal):
    async def scenario():
        await image_dal.create(_record("a.png", file_id="F1"))
        await image_dal.create(_record("b.png", file_id="F1"))

    with pytest.raises(ValidationError):
        asyncio.run(scenario())


def test_find_by_external_id_repairs_missing_index_entry(image_dal, kv):
    async def scenario():
        created = await image_dal.create(_record("a.png", file_id="F1"))
        await kv.delete(f"{FILE_ID_KEY_PREFIX}F1")
        found = await image_dal.find_by_external_id("F1")
        return created, found, await kv.get(f"{FILE_ID_KEY_PREFIX}F1")

    created, found, repaired = asyncio.run(scenario())

    assert found.id == created.id
    assert repaired == created.id


def test_find_by_external_id_drops_stale_entries(image_dal, kv):
    async def scenario():
        await kv.set(f"{FILE_ID_KEY_PREFIX}GHOST", "12345")
        found = await image_dal.find_by_external_id("GHOST")
        return found, await kv.get(f"{FILE_ID_KEY_PREFIX}GHOST")

    found, entry = asyncio.run(scenario())

    assert found is None
    assert entry is None


def test_delete_clears_reverse_index(image_dal, kv):
    async def scenario():
        created = await image_dal.create(_record("a.png", file_id="F1"))
        deleted = await image_dal.delete(created.id)
        return (
            deleted,
            await kv.get(f"{FILE_ID_KEY_PREFIX}F1"),
            await kv.smembers(TELEGRAM_IMAGES_KEY),
            await image_dal.get(created.id),
        )

    deleted, entry, members, record = asyncio.run(scenario())

    assert deleted.filename == "a.png"
    assert entry is None
    assert members == []
    assert record is None


def test_rebuild_external_index_recovers_from_corruption(image_dal, kv):
    async def scenario():
        first = await image_dal.create(_record("a.png", file_id="F1"))
        await image_dal.create(_record("b.png"))
        await kv.delete(f"{FILE_ID_KEY_PREFIX}F1", TELEGRAM_IMAGES_KEY)
        await kv.set(f"{FILE_ID_KEY_PREFIX}STALE", "999")
        summary = await image_dal.rebuild_external_index()
        return first, summary, await kv.get(f"{FILE_ID_KEY_PREFIX}F1"), await image_dal.list_external_images()

    first, summary, entry, external = asyncio.run(scenario())

    assert summary == {"indexed": 1, "removedKeys": 1}
    assert entry == first.id
    assert [img.id for img in external] == [first.id]


def test_list_external_images_prunes_vanished_records(image_dal, kv):
    async def scenario():
        await kv.sadd(TELEGRAM_IMAGES_KEY, "404")
        listed = await image_dal.list_external_images()
        return listed, await kv.smembers(TELEGRAM_IMAGES_KEY)

    listed, members = asyncio.run(scenario())

    assert listed == []
    assert members == []


def test_sync_cursor_roundtrip(image_dal):
    async def scenario():
        before = await image_dal.get_sync_cursor()
        await image_dal.set_sync_cursor(41)
        return before, await image_dal.get_sync_cursor()

    assert asyncio.run(scenario()) == (None, 41)
