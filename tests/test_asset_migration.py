# tests/test_asset_migration.py
import json

import pytest

from models.intentions_store import load_form_submission, save_form_submission
from services.asset_migration import AssetMigrator, MigrationReport
from services.errors import FormDataMissing, IntentionNotFound
from tests.utils import PUBLIC_BASE, TEMPLATE, object_exists, put_temp_photo, seed_intention


def _form(iid):
    row = load_form_submission(TEMPLATE, iid)
    return row["status"], json.loads(row["form_data"])


def test_three_photos_one_missing(storage, migrator):
    p1 = put_temp_photo(storage, "a.png")
    p2 = put_temp_photo(storage, "b.jpg", content_type="image/jpeg")
    missing = f"{PUBLIC_BASE}/temp/{TEMPLATE}/gone.png"
    seed_intention("NH-1", form_data={"photos": [{"preview": p1}, {"preview": p2},
                                                 {"preview": missing}]})

    report = migrator.migrate("NH-1")

    assert (report.moved, report.not_found, report.errors, report.total) == (2, 1, 0, 3)
    status, form = _form("NH-1")
    assert status == "approved"
    assert form["photos"][2]["preview"] == missing


def test_moved_photo_is_rewritten_and_provisional_deleted(storage, migrator):
    preview = put_temp_photo(storage, "cover.jpg", body=b"jpegbytes", content_type="image/jpeg")
    seed_intention("NH-1", form_data={"title": "hi", "photos": [{"preview": preview, "caption": "c"}]})

    report = migrator.migrate("NH-1")
    assert report.moved == 1

    _, form = _form("NH-1")
    new_key = f"final/{TEMPLATE}/NH-1/cover.jpg"
    assert form["photos"][0] == {"preview": f"{PUBLIC_BASE}/{new_key}", "caption": "c"}
    assert form["title"] == "hi"
    assert not object_exists(storage, f"temp/{TEMPLATE}/cover.jpg")
    obj = storage.get(new_key)
    assert obj.body == b"jpegbytes"
    assert obj.content_type == "image/jpeg"


def test_photos_absent_is_noop_but_marks_approved(migrator):
    seed_intention("NH-1", form_data={"title": "no photos"})
    report = migrator.migrate("NH-1")
    assert report.total == 0
    status, form = _form("NH-1")
    assert status == "approved"
    assert form == {"title": "no photos"}


def test_photos_not_a_list_is_noop(migrator):
    seed_intention("NH-1", form_data={"photos": "nope"})
    assert migrator.migrate("NH-1").total == 0


def test_non_provisional_urls_are_skipped(storage, migrator):
    seed_intention("NH-1", form_data={"photos": [
        {"preview": f"{PUBLIC_BASE}/final/{TEMPLATE}/NH-1/x.png"},
        {"preview": "https://cdn.other.test/img.png"},
        {"preview": None},
        "just a string",
        {"caption": "no preview"},
    ]})
    report = migrator.migrate("NH-1")
    assert (report.skipped, report.total, report.errors) == (5, 5, 0)
    assert _form("NH-1")[0] == "approved"


def test_rerun_is_harmless(storage, migrator):
    seed_intention("NH-1", form_data={"photos": [{"preview": put_temp_photo(storage, "a.png")}]})
    assert migrator.migrate("NH-1").moved == 1
    again = migrator.migrate("NH-1")
    assert (again.moved, again.skipped) == (0, 1)


class _FlakyStorage:
    """Wraps real storage; put() fails for one key."""

    def __init__(self, inner, bad_key):
        self.inner, self.bad_key = inner, bad_key

    def get(self, key):
        return self.inner.get(key)

    def put(self, key, body, content_type=None):
        if key == self.bad_key:
            raise OSError("disk on fire")
        return self.inner.put(key, body, content_type)

    def delete(self, key):
        return self.inner.delete(key)


def test_one_failed_photo_does_not_block_others(storage):
    ok = put_temp_photo(storage, "ok.png")
    bad = put_temp_photo(storage, "bad.png")
    seed_intention("NH-1", form_data={"photos": [{"preview": ok}, {"preview": bad}]})
    m = AssetMigrator(_FlakyStorage(storage, f"final/{TEMPLATE}/NH-1/bad.png"), PUBLIC_BASE)

    report = m.migrate("NH-1")

    assert (report.moved, report.errors, report.total) == (1, 1, 2)
    assert report.failures[0]["key"] == f"temp/{TEMPLATE}/bad.png"
    assert "disk on fire" in report.failures[0]["error"]
    status, form = _form("NH-1")
    assert status == "approved"
    assert form["photos"][1]["preview"] == bad
    # the failed photo stays in provisional storage
    assert object_exists(storage, f"temp/{TEMPLATE}/bad.png")


def test_form_data_missing_or_invalid(migrator):
    seed_intention("NH-1", with_form=False)
    with pytest.raises(FormDataMissing):
        migrator.migrate("NH-1")

    seed_intention("NH-2", form_data={})
    save_form_submission(TEMPLATE, "NH-2", [], status="pending")  # JSON, but not an object
    with pytest.raises(FormDataMissing):
        migrator.migrate("NH-2")


def test_unknown_intention(migrator):
    with pytest.raises(IntentionNotFound):
        migrator.migrate("nope")


def test_report_from_outcomes_to_dict():
    r = MigrationReport(moved=2, not_found=1, total=3)
    assert r.to_dict() == {"moved": 2, "skipped": 0, "not_found": 1, "errors": 0,
                           "total": 3, "failures": []}


def test_permanent_key_derivation():
    assert AssetMigrator.permanent_key("temp/nossa_historia/a/b.png", "NH-1") == \
        "final/nossa_historia/NH-1/a/b.png"
    assert AssetMigrator.permanent_key("temp/only", "NH-1") is None
    assert AssetMigrator.permanent_key("other/x/y.png", "NH-1") is None
