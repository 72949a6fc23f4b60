from fastapi.testclient import TestClient

from main import create_app
from tests.conftest import make_png
from utils.settings import DEFAULT_UPLOAD_MAX_BYTES


def _upload(client, data, headers=None, filename="photo.png", content_type="image/png", **form):
    return client.post(
        "/upload",
        files={"image": (filename, data, content_type)},
        data=form,
        headers=headers or {},
    )


def test_anonymous_upload_is_relayed_but_not_indexed(client, fake_telegram):
    response = _upload(client, make_png())

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["imageUrl"] is None
    assert body["image"] is None
    assert "administrators" in body["message"]
    assert len(fake_telegram.sent) == 1
    assert client.get("/images").json()["pagination"]["total"] == 0


def test_admin_upload_is_indexed(client, admin_headers, fake_telegram):
    response = _upload(client, make_png(16, 9), headers=admin_headers, category="screens", folderId="chat")

    body = response.json()
    image = body["image"]
    assert response.status_code == 200
    assert body["imageUrl"].startswith("https://api.telegram.org/file/bot")
    assert image["source"] == "upload"
    assert image["category"] == "screens"
    assert image["folderId"] == "chat"
    assert image["fileId"] == body["fileId"]
    assert image["metadata"]["width"] == 16
    assert image["metadata"]["height"] == 9

    listed = client.get("/images").json()["images"]
    assert [img["id"] for img in listed] == [image["id"]]


def test_admin_upload_defaults_to_general_category(client, admin_headers):
    image = _upload(client, make_png(), headers=admin_headers).json()["image"]

    assert image["category"] == "general"
    assert image["folderId"] is None


def test_oversized_upload_never_reaches_telegram(client, fake_telegram):
    png = make_png()
    data = png + b"\0" * (DEFAULT_UPLOAD_MAX_BYTES + 1 - len(png))

    response = _upload(client, data)

    assert response.status_code == 413
    assert response.json()["success"] is False
    assert fake_telegram.calls == []


def test_upload_at_exact_limit_is_accepted(settings, fake_telegram):
    settings.upload_max_bytes = 4096
    data = make_png(padding=4096)[:4096]
    app = create_app(settings=settings, telegram_transport=fake_telegram.transport)

    with TestClient(app) as test_client:
        response = _upload(test_client, data)

    assert response.status_code == 200


def test_upload_validation(client, fake_telegram):
    missing = client.post("/upload", data={"category": "x"})
    text = _upload(client, b"hello", filename="notes.txt", content_type="text/plain")
    garbage = _upload(client, b"not really a png")
    empty = _upload(client, b"")

    assert missing.status_code == 400
    assert text.status_code == 400
    assert garbage.status_code == 400
    assert empty.status_code == 400
    assert fake_telegram.calls == []


def test_upload_unknown_folder_rejected_for_admin(client, admin_headers, fake_telegram):
    response = _upload(client, make_png(), headers=admin_headers, folderId="folder_missing")

    assert response.status_code == 400
    assert fake_telegram.calls == []


def test_upload_rate_limit(client):
    headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
    statuses = [_upload(client, make_png(), headers=headers).status_code for _ in range(10)]

    limited = _upload(client, make_png(), headers=headers)
    other_client = _upload(client, make_png(), headers={"X-Forwarded-For": "198.51.100.1"})

    assert statuses == [200] * 10
    assert limited.status_code == 429
    assert 1 <= int(limited.headers["retry-after"]) <= 60
    assert limited.json()["retryAfter"] == int(limited.headers["retry-after"])
    assert other_client.status_code == 200


def test_upload_telegram_failure_is_upstream_error(client, fake_telegram):
    fake_telegram.failing["sendPhoto"] = "Bad Request: chat not found"

    response = _upload(client, make_png())

    assert response.status_code == 500
    assert "chat not found" in response.json()["error"]


def test_unresolvable_upload_is_reported_and_not_indexed(client, admin_headers, fake_telegram):
    fake_telegram.failing["getFile"] = "Bad Request: file is too big"

    response = _upload(client, make_png(), headers=admin_headers)

    assert response.status_code == 500
    assert len(fake_telegram.sent) == 1
    assert client.get("/images").json()["pagination"]["total"] == 0


def test_upload_without_telegram_configuration(settings, fake_telegram):
    settings.telegram_bot_token = "your_bot_token_here"
    app = create_app(settings=settings, telegram_transport=fake_telegram.transport)

    with TestClient(app) as test_client:
        response = _upload(test_client, make_png())

    assert response.status_code == 500
    assert "TELEGRAM_BOT_TOKEN" in response.json()["error"]
