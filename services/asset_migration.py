# services/asset_migration.py
"""
Move an intention's photos from provisional to permanent storage.

  temp/<template>/<filename>  ->  final/<template>/<intention_id>/<filename>

Each photo is handled independently (copy, then delete the provisional
object, then rewrite its preview URL). A failed photo is counted in the
report and never aborts the others. Once every photo has been attempted,
the rewritten form_data is saved and the side-table row is marked
approved, whatever the per-photo outcome.
"""

from __future__ import annotations
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

from models.intentions_store import get_intention, load_form_submission, save_form_submission
from services.errors import FormDataMissing, IntentionNotFound
from services.metrics import ASSET_MIGRATIONS
from services.storage import ObjectStorage

log = logging.getLogger(__name__)

TEMP_PREFIX = "temp/"
FINAL_PREFIX = "final/"

MOVED = "moved"
SKIPPED = "skipped"
NOT_FOUND = "not_found"
ERROR = "error"


@dataclass
class AssetOutcome:
    status: str
    key: Optional[str] = None
    new_key: Optional[str] = None
    error: Optional[str] = None


@dataclass
class MigrationReport:
    moved: int = 0
    skipped: int = 0
    not_found: int = 0
    errors: int = 0
    total: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: List[AssetOutcome]) -> "MigrationReport":
        r = cls(total=len(outcomes))
        for o in outcomes:
            if o.status == MOVED:
                r.moved += 1
            elif o.status == SKIPPED:
                r.skipped += 1
            elif o.status == NOT_FOUND:
                r.not_found += 1
            else:
                r.errors += 1
                r.failures.append({"key": o.key, "error": o.error})
        return r

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moved": self.moved, "skipped": self.skipped, "not_found": self.not_found,
            "errors": self.errors, "total": self.total, "failures": list(self.failures),
        }


def _parse_form_data(raw: Any) -> Optional[dict]:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class AssetMigrator:
    def __init__(self, storage: ObjectStorage, public_base_url: str, max_workers: int = 8) -> None:
        self.storage = storage
        self.public_base_url = (public_base_url or "").rstrip("/")
        self._base_path = urlparse(self.public_base_url).path.rstrip("/") + "/"
        self.max_workers = max(1, int(max_workers))

    # ----- url <-> key ----------------------------------------------------

    def key_from_url(self, preview: str) -> Optional[str]:
        """Object key addressed by a preview URL, or None if it is not one of ours."""
        path = urlparse(preview).path
        if not path.startswith(self._base_path):
            return None
        return unquote(path[len(self._base_path):])

    def url_for_key(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    @staticmethod
    def permanent_key(temp_key: str, intention_id: str) -> Optional[str]:
        parts = temp_key.split("/")
        # ['temp', <template>, <filename...>]
        if len(parts) < 3 or parts[0] != TEMP_PREFIX.rstrip("/") or not parts[1] or not parts[-1]:
            return None
        template, filename = parts[1], "/".join(parts[2:])
        return f"{FINAL_PREFIX}{template}/{intention_id}/{filename}"

    # ----- per asset ------------------------------------------------------

    def _move_one(self, intention_id: str, photo: Any) -> AssetOutcome:
        if not isinstance(photo, dict) or not isinstance(photo.get("preview"), str):
            return AssetOutcome(SKIPPED)

        key = self.key_from_url(photo["preview"])
        if not key or not key.startswith(TEMP_PREFIX):
            return AssetOutcome(SKIPPED, key=key)

        new_key = self.permanent_key(key, intention_id)
        if not new_key:
            return AssetOutcome(SKIPPED, key=key)

        try:
            obj = self.storage.get(key)
            if obj is None:
                log.warning("Intention %s: provisional object %s not found",
                            intention_id, key)
                return AssetOutcome(NOT_FOUND, key=key)
            self.storage.put(new_key, obj.body, obj.content_type)
            self.storage.delete(key)
        except Exception as e:
            log.exception("Intention %s: failed to move %s", intention_id, key)
            return AssetOutcome(ERROR, key=key, error=f"{type(e).__name__}: {e}")

        photo["preview"] = self.url_for_key(new_key)
        return AssetOutcome(MOVED, key=key, new_key=new_key)

    def _move_all(self, intention_id: str, photos: list) -> List[AssetOutcome]:
        if not photos:
            return []
        workers = min(self.max_workers, len(photos))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="asset-move") as pool:
            return list(pool.map(lambda p: self._move_one(intention_id, p), photos))

    # ----- public ---------------------------------------------------------

    def migrate(self, intention_id: str) -> MigrationReport:
        intention = get_intention(intention_id)
        if not intention:
            raise IntentionNotFound(
                f"intention {intention_id} not found", intention_id=intention_id)
        template_id = intention["template_id"]

        row = load_form_submission(template_id, intention_id)
        if not row:
            raise FormDataMissing(
                f"no form submission for intention {intention_id}", intention_id=intention_id)
        form_data = _parse_form_data(row.get("form_data"))
        if form_data is None:
            raise FormDataMissing(
                f"form_data for intention {intention_id} is missing or invalid",
                intention_id=intention_id)

        photos = form_data.get("photos")
        if not isinstance(photos, list):
            log.info("Intention %s has no photos to migrate", intention_id)
            photos = []

        outcomes = self._move_all(intention_id, photos)
        report = MigrationReport.from_outcomes(outcomes)

        save_form_submission(template_id, intention_id, form_data, status="approved")

        for o in outcomes:
            ASSET_MIGRATIONS.labels(outcome=o.status).inc()
        level = logging.WARNING if (report.errors or report.not_found) else logging.INFO
        log.log(level, "Intention %s asset migration: moved=%d skipped=%d not_found=%d errors=%d total=%d",
                intention_id, report.moved, report.skipped, report.not_found,
                report.errors, report.total)
        return report
