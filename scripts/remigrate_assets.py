# scripts/remigrate_assets.py
"""
Re-run photo migration for approved intentions (e.g. after a partial
migration or a crash between the intention write and the photo moves).

    python -m scripts.remigrate_assets <intention_id> [<intention_id> ...]

Photos already in final/ are skipped, so running this twice is harmless.
"""
import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

from app import create_app  # noqa: E402
from models.intentions_store import get_intention  # noqa: E402
from services.errors import ReconciliationError  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("intention_ids", nargs="+")
    parser.add_argument("--include-pending", action="store_true",
                        help="also migrate intentions that are not approved yet")
    args = parser.parse_args(argv)

    app = create_app()
    migrator = app.extensions["reconciliation_engine"].migrator
    failed = 0
    for iid in args.intention_ids:
        intention = get_intention(iid)
        if not intention:
            print(f"[!] {iid}: not found")
            failed += 1
            continue
        if intention["status"] != "approved" and not args.include_pending:
            print(f"[-] {iid}: status is {intention['status']}; skipping")
            continue
        try:
            report = migrator.migrate(iid)
        except ReconciliationError as e:
            print(f"[!] {iid}: {e.message}")
            failed += 1
            continue
        print(f"[+] {iid}: {json.dumps(report.to_dict())}")
        if report.errors or report.not_found:
            failed += 1
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
