import asyncio

from models.image_record import SOURCE_TELEGRAM, ImageRecord
from services.reconciler import TelegramReconciler, sync_status
from services.telegram.client import TelegramClient
from services.telegram.media_fetcher import MediaFetcher
from tests.fake_telegram import BOT_TOKEN


def _sync(fake, image_dal, force_full=False):
    async def scenario():
        client = TelegramClient(BOT_TOKEN, fake.chat_id, transport=fake.transport)
        try:
            reconciler = TelegramReconciler(image_dal, MediaFetcher(client, image_dal))
            return await reconciler.run(force_full=force_full)
        finally:
            await client.aclose()

    return asyncio.run(scenario())


def test_first_pass_inserts_and_second_pass_is_idempotent(fake_telegram, image_dal):
    fake_telegram.history = [
        fake_telegram.photo_message(2, "P2", caption="Beach day #Travel"),
        fake_telegram.document_message(1, "D1", file_name="scan.png"),
    ]

    first = _sync(fake_telegram, image_dal)
    second = _sync(fake_telegram, image_dal)
    images = asyncio.run(image_dal.all_images())

    assert (first.inserted, first.skipped, first.deleted) == (2, 0, 0)
    assert (second.inserted, second.skipped, second.deleted) == (0, 2, 0)
    assert len(images) == 2
    by_file = {img.external_file_id: img for img in images}
    assert by_file["P2"].category == "travel"
    assert by_file["P2"].description == "Beach day #Travel"
    assert by_file["P2"].filename == "telegram_P2"
    assert by_file["P2"].source == SOURCE_TELEGRAM
    assert by_file["P2"].folder_id is None
    assert by_file["D1"].filename == "scan.png"
    assert by_file["D1"].category == "general"


def test_existing_records_are_never_modified(fake_telegram, image_dal):
    fake_telegram.history = [fake_telegram.photo_message(1, "P1")]
    _sync(fake_telegram, image_dal)
    record = asyncio.run(image_dal.all_images())[0]
    asyncio.run(image_dal.update(record.id, {"category": "family", "folder_id": "avatar", "filename": "me.jpg"}))

    _sync(fake_telegram, image_dal)
    after = asyncio.run(image_dal.get(record.id))

    assert (after.category, after.folder_id, after.filename) == ("family", "avatar", "me.jpg")


def test_authoritative_pass_deletes_vanished_photos(fake_telegram, image_dal):
    fake_telegram.history = [fake_telegram.photo_message(2, "KEEP"), fake_telegram.photo_message(1, "DROP")]
    _sync(fake_telegram, image_dal)
    manual = asyncio.run(image_dal.create(ImageRecord(id=None, url="https://example.test/m", filename="m.png")))

    fake_telegram.history = fake_telegram.history[:1]
    result = _sync(fake_telegram, image_dal)
    remaining = {img.external_file_id for img in asyncio.run(image_dal.all_images())}

    assert result.deleted == 1
    assert result.authoritative is True
    assert remaining == {"KEEP", None}
    assert asyncio.run(image_dal.get(manual.id)) is not None
    assert asyncio.run(image_dal.get_stats())["totalImages"] == 2


def test_unresolvable_photo_still_in_chat_is_not_deleted(fake_telegram, image_dal):
    fake_telegram.history = [fake_telegram.photo_message(2, "KEEP"), fake_telegram.photo_message(1, "OTHER")]
    _sync(fake_telegram, image_dal)
    kept = asyncio.run(image_dal.find_by_external_id("KEEP"))
    asyncio.run(image_dal.update(kept.id, {"category": "family", "folder_id": "avatar"}))

    del fake_telegram.files["KEEP"]
    result = _sync(fake_telegram, image_dal)
    after = asyncio.run(image_dal.get(kept.id))

    assert result.authoritative is True
    assert result.deleted == 0
    assert result.inserted == 0
    assert (after.category, after.folder_id) == ("family", "avatar")
    assert {img.external_file_id for img in asyncio.run(image_dal.all_images())} == {"KEEP", "OTHER"}


def test_partial_update_feed_pass_keeps_records(fake_telegram, image_dal):
    fake_telegram.history = [fake_telegram.photo_message(1, "OLD")]
    _sync(fake_telegram, image_dal)

    fake_telegram.history_available = False
    fake_telegram.add_update(1, fake_telegram.photo_message(2, "NEW"))
    result = _sync(fake_telegram, image_dal)

    files = {img.external_file_id for img in asyncio.run(image_dal.all_images())}
    assert result.authoritative is False
    assert result.deleted == 0
    assert result.inserted == 1
    assert files == {"OLD", "NEW"}


def test_sync_uses_self_healed_index_instead_of_duplicating(fake_telegram, image_dal, kv):
    fake_telegram.history = [fake_telegram.photo_message(1, "P1")]
    _sync(fake_telegram, image_dal)
    asyncio.run(kv.delete("imgbed:fileid:P1"))

    result = _sync(fake_telegram, image_dal)

    assert result.inserted == 0
    assert result.skipped == 1
    assert len(asyncio.run(image_dal.all_images())) == 1


def test_new_records_are_newest_first(fake_telegram, image_dal):
    fake_telegram.history = [fake_telegram.photo_message(1, "A")]
    _sync(fake_telegram, image_dal)
    fake_telegram.history = [fake_telegram.photo_message(2, "B"), fake_telegram.photo_message(1, "A")]
    _sync(fake_telegram, image_dal)

    assert [img.external_file_id for img in asyncio.run(image_dal.all_images())] == ["B", "A"]


def test_sync_status_reports_sources(fake_telegram, image_dal):
    fake_telegram.history = [fake_telegram.photo_message(1, "P1")]
    _sync(fake_telegram, image_dal)
    asyncio.run(image_dal.create(ImageRecord(id=None, url="https://example.test/m", filename="m.png")))

    status = asyncio.run(sync_status(image_dal))

    assert status["stats"]["totalImages"] == 2
    assert status["stats"]["telegramImages"] == 1
    assert status["sourceAnalysis"] == {"total": 2, "telegram": 1, "upload": 0, "manual": 1}
    assert status["recentImages"][0]["filename"] == "m.png"
    assert status["telegramImageDetails"][0]["fileId"] == "P1"
