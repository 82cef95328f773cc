import os
import time
from unittest.mock import MagicMock

import pytest

from conftest import LAST_UPDATE, FakeClient, make_photo
from flickrsync import syncer as syncer_module
from flickrsync.errors import WindowParseError
from flickrsync.syncer import PhotoBackup, parse_modified_since, run_backup

NOW = 1_700_000_000


def ten_photos():
    return [make_photo(photo_id=str(100 + i), title=f"photo {i}") for i in range(10)]


def entries(photos):
    return [{"id": p.id, "secret": p.secret, "title": p.title} for p in photos]


@pytest.mark.parametrize("expr, seconds", [
    ("3h", 3 * 3600),
    ("2d", 2 * 86400),
    ("1w", 7 * 86400),
    ("2M", 2 * 28 * 86400),
])
def test_parse_modified_since(expr, seconds):
    assert parse_modified_since(expr, now=NOW) == NOW - seconds


def test_parse_modified_since_accepts_timestamps():
    assert parse_modified_since("1150000000", now=NOW) == 1150000000
    assert parse_modified_since(1150000000, now=NOW) == 1150000000


@pytest.mark.parametrize("expr", ["d", "3y", "0d", "-3d", "3 days", ""])
def test_parse_modified_since_rejects(expr):
    with pytest.raises(WindowParseError):
        parse_modified_since(expr, now=NOW)


def test_backup_downloads_every_photo(config, photos_root):
    photos = ten_photos()
    client = FakeClient(photos)

    assert PhotoBackup(config, client).backup()

    assert len(client.transfers) == 10
    assert client.info_calls == [p.id for p in photos]
    assert (photos_root / "2006" / "03" / "04" / "20060304-100-photo_0.jpg").is_file()


def test_search_is_scoped_to_the_authenticated_user(config):
    config["search"]["tags"] = "cameraphone"
    client = FakeClient([make_photo()])

    PhotoBackup(config, client).backup()

    method, params, page = client.listing_calls[0]
    assert method == "search"
    assert params["user_id"] == "35034348999@N01"
    assert params["tags"] == "cameraphone"
    assert page == 1


def test_pages_follow_the_first_page_count(config):
    photos = ten_photos()
    client = FakeClient(photos, pages=[entries(photos[:4]), entries(photos[4:8]), entries(photos[8:])])

    assert PhotoBackup(config, client).backup()

    assert [call[2] for call in client.listing_calls] == [1, 2, 3]
    assert client.info_calls == [p.id for p in photos]


def test_modified_since_uses_recently_updated(config, monkeypatch):
    monkeypatch.setattr(time, "time", lambda: NOW)
    config["search"]["modified_since"] = "3d"
    client = FakeClient([make_photo()])

    assert PhotoBackup(config, client).backup()

    assert client.listing_calls == [("recently_updated", NOW - 3 * 86400, 1)]


def test_bad_window_is_fatal(config):
    config["search"]["modified_since"] = "sometime"
    client = FakeClient([make_photo()])

    assert not PhotoBackup(config, client).backup()
    assert client.listing_calls == []


def test_identity_failure_is_fatal(config):
    client = FakeClient([make_photo()])
    client.fail_identity = True

    assert not PhotoBackup(config, client).backup()
    assert client.listing_calls == []


def test_missing_root_is_fatal(config):
    config["backup"]["photos_root"] = ""
    client = FakeClient([make_photo()])

    assert not PhotoBackup(config, client).backup()
    assert client.listing_calls == []


def test_listing_failure_is_fatal(config):
    client = FakeClient([make_photo()])
    client.fail_listing = True
    queue_finished = MagicMock()
    backup = PhotoBackup(config, client)
    backup.register_hook("queue_finished", queue_finished)

    assert not backup.backup()
    queue_finished.assert_not_called()


def test_photo_failure_is_not_fatal(config):
    photos = ten_photos()
    client = FakeClient(photos)
    client.fail_info.add("103")
    finished = []
    backup = PhotoBackup(config, client)
    backup.register_hook("photo_finished", lambda entry, ok: finished.append((entry["id"], ok)))

    assert backup.backup()

    assert len(client.transfers) == 9
    assert ("103", False) in finished
    assert sum(ok for _, ok in finished) == 9


def test_hooks_fire_in_order(config):
    photos = ten_photos()[:2]
    client = FakeClient(photos)
    events = []
    backup = PhotoBackup(config, client)
    backup.register_hook("queue_started", lambda doc: events.append(("queue_started", doc["pages"])))
    backup.register_hook("photo_started", lambda entry: events.append(("photo_started", entry["id"])))
    backup.register_hook("photo_finished", lambda entry, ok: events.append(("photo_finished", entry["id"], ok)))
    backup.register_hook("queue_finished", lambda: events.append(("queue_finished",)))

    backup.backup()

    assert events == [
        ("queue_started", 1),
        ("photo_started", "100"),
        ("photo_finished", "100", True),
        ("photo_started", "101"),
        ("photo_finished", "101", True),
        ("queue_finished",),
    ]


def test_register_hook_validates(config):
    backup = PhotoBackup(config, FakeClient())
    with pytest.raises(ValueError):
        backup.register_hook("start_everything", lambda: None)
    with pytest.raises(TypeError):
        backup.register_hook("queue_finished", "not callable")


def test_cancel_mid_page_skips_scrub(config, monkeypatch):
    config["backup"]["scrub_backups"] = True
    photos = ten_photos()
    client = FakeClient(photos, pages=[entries(photos), entries(photos)])
    scrub = MagicMock()
    monkeypatch.setattr(syncer_module, "scrub", scrub)
    queue_finished = MagicMock()

    backup = PhotoBackup(config, client)

    def stop_after_third(entry, ok):
        if entry["id"] == "102":
            backup.cancel()

    backup.register_hook("photo_finished", stop_after_third)
    backup.register_hook("queue_finished", queue_finished)

    assert backup.backup()

    assert client.info_calls == ["100", "101", "102"]
    assert len(client.listing_calls) == 1
    queue_finished.assert_called_once_with()
    scrub.assert_not_called()


def test_scrub_runs_after_a_complete_run(config, photos_root):
    config["backup"]["scrub_backups"] = True
    stale = photos_root / "2006" / "03" / "04" / "20060304-100-old_title.jpg"
    stale.parent.mkdir(parents=True)
    stale.write_bytes(b"x")
    keep = photos_root / "readme.txt"
    keep.write_text("hands off")

    assert PhotoBackup(config, FakeClient(ten_photos())).backup()

    assert not stale.exists()
    assert keep.exists()
    assert (photos_root / "2006" / "03" / "04" / "20060304-100-photo_0.jpg").is_file()


def test_scrub_disabled_by_default(config, photos_root):
    stale = photos_root / "2006" / "03" / "04" / "20060304-100-old_title.jpg"
    stale.parent.mkdir(parents=True)
    stale.write_bytes(b"x")

    assert PhotoBackup(config, FakeClient(ten_photos())).backup()

    assert stale.exists()


def test_failed_photo_keeps_its_files_through_scrub(config, photos_root):
    config["backup"]["scrub_backups"] = True
    photos = ten_photos()
    existing = photos_root / "2006" / "03" / "04" / "20060304-103-photo_3.jpg"
    existing.parent.mkdir(parents=True)
    existing.write_bytes(b"x")
    client = FakeClient(photos)
    client.fail_info.add("103")

    assert PhotoBackup(config, client).backup()

    assert existing.exists()


def test_second_run_transfers_nothing(config, photos_root):
    config["rdf"]["do_dump"] = True
    config["backup"]["fetch_medium"] = True
    photos = ten_photos()
    client = FakeClient(photos)

    assert PhotoBackup(config, client).backup()
    assert len(client.transfers) == 20

    sidecars = sorted(photos_root.rglob("*.xml"))
    assert len(sidecars) == 10
    for path in sidecars:
        os.utime(path, (LAST_UPDATE, LAST_UPDATE))

    client.transfers.clear()
    assert PhotoBackup(config, client).backup()

    assert client.transfers == []
    assert all(path.stat().st_mtime == LAST_UPDATE for path in sidecars)


def test_unchanged_sidecar_survives_scrub(config, photos_root):
    config["rdf"]["do_dump"] = True
    config["backup"]["scrub_backups"] = True
    client = FakeClient([make_photo()])

    PhotoBackup(config, client).backup()
    PhotoBackup(config, client).backup()

    day = photos_root / "2006" / "03" / "04"
    assert sorted(p.name for p in day.iterdir()) == ["20060304-123-sunset.jpg", "20060304-123-sunset.xml"]


def test_backup_photo_single(config, photos_root):
    client = FakeClient([make_photo(photo_id="42", title="Mie")])
    backup = PhotoBackup(config, client)

    assert backup.backup_photo("42", "s3cr3t")

    assert client.listing_calls == []
    assert (photos_root / "2006" / "03" / "04" / "20060304-42-mie.jpg").is_file()
    assert backup.retained.paths("42")


def test_backup_photo_with_bad_date_fails(config):
    client = FakeClient([make_photo(photo_id="42", taken="unknown")])
    assert not PhotoBackup(config, client).backup_photo("42")


def test_embedded_metadata_only_for_fresh_original(config, monkeypatch):
    config["iptc"]["do_dump"] = True
    stored = []
    monkeypatch.setattr(syncer_module, "store_iptc", lambda photo, path: stored.append(path.name) or True)
    client = FakeClient([make_photo()])

    PhotoBackup(config, client).backup()
    PhotoBackup(config, client).backup()

    assert stored == ["20060304-123-sunset.jpg"]


def test_run_backup_with_client(config):
    client = FakeClient([make_photo()])
    assert run_backup(config, client=client)
    assert len(client.transfers) == 1


def test_unexpected_metadata_error_only_fails_that_photo(config, photos_root, monkeypatch):
    config["rdf"]["do_dump"] = True
    config["backup"]["scrub_backups"] = True
    photos = ten_photos()
    real_store_rdf = syncer_module.store_rdf

    def flaky_store_rdf(photo, *args, **kwargs):
        if photo.id == "101":
            raise RuntimeError("serializer blew up")
        return real_store_rdf(photo, *args, **kwargs)

    monkeypatch.setattr(syncer_module, "store_rdf", flaky_store_rdf)
    client = FakeClient(photos)
    finished = []
    queue_finished = MagicMock()
    backup = PhotoBackup(config, client)
    backup.register_hook("photo_finished", lambda entry, ok: finished.append((entry["id"], ok)))
    backup.register_hook("queue_finished", queue_finished)

    assert backup.backup()

    assert client.info_calls == [p.id for p in photos]
    assert ("101", False) in finished
    assert sum(ok for _, ok in finished) == 9
    queue_finished.assert_called_once_with()
    # the failed photo's fresh download is not scrubbed
    assert (photos_root / "2006" / "03" / "04" / "20060304-101-photo_1.jpg").is_file()
    assert len(list(photos_root.rglob("*.xml"))) == 9


def test_run_backup_without_credentials_returns_false(config, caplog):
    config["flickr"]["api_key"] = ""
    assert run_backup(config) is False
    assert "authentication failed" in caplog.text


def test_cancel_before_start_is_honoured(config):
    client = FakeClient(ten_photos())
    backup = PhotoBackup(config, client)

    backup.cancel()
    assert backup.backup()
    assert client.info_calls == []

    # the flag does not outlive the run it stopped
    assert not backup.cancelled
    assert backup.backup()
    assert len(client.info_calls) == 10
