"""
Sync the DIVI intensive care register's archived daily reports
(https://www.divi.de/divi-intensivregister-tagesreport-archiv) to a
directory of normalized JSON files, one per report date.

    divi-tool sync -d data      # everything not yet on disk
    divi-tool today             # just today's report, overwritten
"""
import argparse
import sys
from dataclasses import dataclass, field
from datetime import date, datetime

import httpx
from loguru import logger

from common.config import VERSION, Config, make_client
from common.errors import DiviError, FetchError, NotFound, SchemaError, StorageError
from common.logs import setup_logging
from common.schema import normalize_rows, timestamp_hint_from_url
from common.store import Store
from ingest.divi_archive import list_available_dates
from ingest.divi_fetch import FetchedReport, fetch, fetch_url


@dataclass
class SyncReport:
    listed: int = 0
    already_synced: int = 0
    written: list = field(default_factory=list)
    missing: list = field(default_factory=list)
    failed: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        lines = [
            f"listed {self.listed}, already synced {self.already_synced}, "
            f"written {len(self.written)}, missing {len(self.missing)}, failed {len(self.failed)}"
        ]
        for day, err in sorted(self.failed.items()):
            lines.append(f"  skipped {day.isoformat()}: {err}")
        return "\n".join(lines)


def build_dataset(report: FetchedReport, day: date | None = None) -> dict:
    """
    Normalize a fetched CSV into the document stored for one date.
    Without `day` the date comes from the first row's timestamp.
    """
    rows = normalize_rows(report.rows, report.date, timestamp_hint=timestamp_hint_from_url(report.url))
    if day is None:
        day = datetime.fromisoformat(rows[0]["timestamp"]).date() if rows else report.date
    return {"date": day.isoformat(), "source_url": report.url, "rows": rows}


def sync(client: httpx.Client, config: Config, *, resync_all: bool = False) -> SyncReport:
    store = Store(config.data_dir)
    report = SyncReport()

    entries = list_available_dates(client, config)
    report.listed = len(entries)
    index = {e.date: e.url for e in entries}

    synced = store.synced_dates()
    todo = sorted(index) if resync_all else sorted(d for d in index if d not in synced)
    report.already_synced = report.listed - len(todo)
    logger.info(f"{len(todo)} of {report.listed} archived dates to sync into {store.path}")

    for day in todo:
        try:
            fetched = fetch(client, day, index)
            dataset = build_dataset(fetched, day)
            out = store.put_dataset(dataset)
        except NotFound as e:
            logger.info(f"Skipping {day}: {e}")
            report.missing.append(day)
            continue
        except (FetchError, SchemaError, StorageError) as e:
            logger.error(f"Failed {day}: {e}")
            report.failed[day] = str(e)
            continue
        logger.info(f"Wrote {out} ({len(dataset['rows'])} rows)")
        report.written.append(day)

    return report


def sync_today(client: httpx.Client, config: Config, *, today: date | None = None):
    """Fetch the current report and write it, replacing any existing file."""
    today = today or date.today()
    fetched = fetch_url(client, config.today_url, today)
    dataset = build_dataset(fetched)
    out = Store(config.data_dir).put_dataset(dataset)
    logger.info(f"Wrote {out} ({len(dataset['rows'])} rows)")
    return out


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="divi-tool",
        description="Sync the DIVI register's archived daily reports as normalized JSON.",
    )
    ap.add_argument("-V", "--version", action="version", version=f"%(prog)s {VERSION}")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = ap.add_subparsers(dest="command", metavar="<command>")

    p = sub.add_parser("sync", help="Synchronize the archived data into a directory of JSON files")
    p.add_argument("-d", "--data", dest="data_dir", default=None, help="output directory (default: $DIVI_DATA_DIR or ./data)")
    p.add_argument("-A", "--resync-all", action="store_true", help="ignore already synced dates and fetch everything")

    p = sub.add_parser("today", help="Fetch the daily report for today")
    p.add_argument("-d", "--data", dest="data_dir", default=None, help="output directory (default: $DIVI_DATA_DIR or ./data)")

    p = sub.add_parser("help", help="Show this message or the help of a command")
    p.add_argument("topic", nargs="?", help="command to describe")
    return ap


def main(argv=None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.command in (None, "help"):
        topic = getattr(args, "topic", None)
        if topic:
            ap.parse_args([topic, "--help"])
        ap.print_help()
        return 0 if args.command == "help" else 2

    config = Config.from_env(data_dir=args.data_dir)
    setup_logging("DEBUG" if args.verbose else config.log_level)

    try:
        with make_client(config) as client:
            if args.command == "sync":
                report = sync(client, config, resync_all=args.resync_all)
                print(report.summary())
            else:
                out = sync_today(client, config)
                print(f"saved {out}")
    except DiviError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
