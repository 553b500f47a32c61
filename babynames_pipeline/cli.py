from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Any, Callable
from uuid import uuid4

import psycopg
from dotenv import load_dotenv

from .config import Settings, load_settings
from .crm_client import HubSpotClient, HubSpotConfig
from .db import connect
from .dead_letter import DeadLetterWriter, iter_dead_letter_records
from .exceptions import PipelineError
from .importer import CsvImporter
from .logging_utils import configure_logging, get_logger, log_json
from .models import IngestOutcome, SourceCursor, SyncOutcome
from .rate_limit import TokenBucket
from .reader import PaginatedReader
from .retry import RetryPolicy
from .runs import finish_run, recent_runs, start_run
from .schema import drop_schema, ensure_schema
from .source import iter_csv_rows, resolve_csv_path
from .storage import PostgresRecordStore
from .sync import ContactSyncer

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2

logger = get_logger()


def _install_cancel_handlers(cancel: threading.Event) -> None:
    def handler(signum, frame):
        log_json(logger, logging.WARNING, "cancel_requested", signal=signum)
        cancel.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def _tracked(conn: Any, stage: str, body: Callable[[str], tuple[str, dict]]) -> int:
    run_id = str(uuid4())
    start_run(conn, run_id, stage)
    try:
        status, stats = body(run_id)
    except Exception as e:
        log_json(logger, logging.ERROR, "run_failed", stage=stage, run_id=run_id, error=str(e), kind=type(e).__name__)
        # A dead connection fails here too; the original error is what propagates.
        try:
            conn.rollback()
            finish_run(conn, run_id, "FAILED", {}, str(e)[:2000])
        except psycopg.Error as ledger_error:
            log_json(logger, logging.ERROR, "run_ledger_write_failed", stage=stage, run_id=run_id, error=str(ledger_error))
        raise
    finish_run(conn, run_id, status, stats, None)
    return EXIT_OK if status == "SUCCESS" else EXIT_PARTIAL


def _ingest_status(outcome: IngestOutcome) -> str:
    if outcome.cancelled:
        return "CANCELLED"
    return "PARTIAL" if outcome.failed_batches else "SUCCESS"


def _sync_status(outcome: SyncOutcome) -> str:
    return "CANCELLED" if outcome.cancelled else "SUCCESS"


def _build_importer(conn: Any, settings: Settings, run_id: str, cancel: threading.Event, batch_size: int | None) -> CsvImporter:
    return CsvImporter(
        PostgresRecordStore(conn),
        batch_size=batch_size or settings.import_batch_size,
        name_column=settings.name_column,
        sex_column=settings.sex_column,
        dead_letter=DeadLetterWriter(settings.dead_letter_path),
        abort_on_sink_error=settings.abort_on_sink_error,
        cancel=cancel,
        run_id=run_id,
    )


def cmd_import(conn: Any, settings: Settings, cancel: threading.Event, *, path: str | None = None, batch_size: int | None = None) -> int:
    csv_path = path or str(resolve_csv_path(settings.download_dir))
    log_json(logger, logging.INFO, "reading_csv", path=csv_path)

    def body(run_id: str) -> tuple[str, dict]:
        importer = _build_importer(conn, settings, run_id, cancel, batch_size)
        outcome = importer.run(iter_csv_rows(csv_path))
        return _ingest_status(outcome), {"source": csv_path, **outcome.stats()}

    return _tracked(conn, "import", body)


def cmd_replay(conn: Any, settings: Settings, cancel: threading.Event, *, path: str) -> int:
    def body(run_id: str) -> tuple[str, dict]:
        importer = _build_importer(conn, settings, run_id, cancel, None)
        outcome = importer.replay(iter_dead_letter_records(path))
        return _ingest_status(outcome), {"source": path, **outcome.stats()}

    return _tracked(conn, "replay", body)


def cmd_sync(conn: Any, settings: Settings, cancel: threading.Event, *, limit: int | None = None, page_size: int | None = None) -> int:
    client = HubSpotClient(
        HubSpotConfig(
            access_token=settings.require_hubspot_token(),
            base_url=settings.hubspot_base_url,
            max_batch_size=settings.hubspot_batch_size,
        )
    )

    def body(run_id: str) -> tuple[str, dict]:
        cursor = SourceCursor(page_size=page_size or settings.sync_page_size, cap=limit or settings.sync_limit)
        syncer = ContactSyncer(
            PaginatedReader(PostgresRecordStore(conn), cursor),
            client,
            batch_size=settings.hubspot_batch_size,
            email_domain=settings.contact_email_domain,
            retry=RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                backoff_base_sec=settings.retry_base_delay_sec,
                backoff_max_sec=settings.retry_max_delay_sec,
            ),
            bucket=TokenBucket(rate_per_sec=settings.hubspot_rate_per_sec) if settings.hubspot_rate_per_sec > 0 else None,
            cancel=cancel,
            run_id=run_id,
        )
        outcome = syncer.run()
        return _sync_status(outcome), outcome.stats()

    return _tracked(conn, "sync", body)


def cmd_status(conn: Any, stage: str | None, limit: int) -> int:
    for run_id, st, started, ended, status, stats, error in recent_runs(conn, stage, limit):
        line = f"{run_id}  {st:<6} {status:<8} started={started} ended={ended} stats={stats}"
        if error:
            line += f" error={error}"
        print(line)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="babynames_pipeline")
    sub = parser.add_subparsers(dest="cmd", required=True)

    mig = sub.add_parser("migrate", help="Create (or drop) the tables")
    mig.add_argument("--down", action="store_true", help="Drop the tables instead")

    imp = sub.add_parser("import", help="Stream the downloaded CSV into Postgres")
    imp.add_argument("--file", default=None, help="CSV path (default: newest CSV/ZIP in DOWNLOAD_DIR)")
    imp.add_argument("--batch-size", type=int, default=None)

    rep = sub.add_parser("replay", help="Re-insert records from a dead-letter JSONL file")
    rep.add_argument("path")

    syn = sub.add_parser("sync", help="Upsert stored records into HubSpot contacts")
    syn.add_argument("--limit", type=int, default=None, help="Max contacts to sync (default HUBSPOT_SYNC_LIMIT)")
    syn.add_argument("--page-size", type=int, default=None)

    sub.add_parser("run", help="migrate, import, then sync")

    stat = sub.add_parser("status", help="Show recent runs")
    stat.add_argument("stage", nargs="?", default=None)
    stat.add_argument("--limit", type=int, default=10)

    return parser


def main(argv=None) -> int:
    load_dotenv(override=False)
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except PipelineError as e:
        configure_logging("INFO")
        log_json(logger, logging.ERROR, "config_invalid", error=str(e))
        return EXIT_FAILED
    configure_logging(settings.log_level)

    cancel = threading.Event()
    _install_cancel_handlers(cancel)

    try:
        with connect(settings.database_url) as conn:
            if args.cmd == "migrate":
                if args.down:
                    drop_schema(conn)
                else:
                    ensure_schema(conn)
                return EXIT_OK

            if args.cmd == "status":
                return cmd_status(conn, args.stage, args.limit)

            if args.cmd == "import":
                return cmd_import(conn, settings, cancel, path=args.file, batch_size=args.batch_size)

            if args.cmd == "replay":
                return cmd_replay(conn, settings, cancel, path=args.path)

            if args.cmd == "sync":
                return cmd_sync(conn, settings, cancel, limit=args.limit, page_size=args.page_size)

            if args.cmd == "run":
                settings.require_hubspot_token()
                ensure_schema(conn)
                rc = cmd_import(conn, settings, cancel)
                if cancel.is_set():
                    return rc
                return max(rc, cmd_sync(conn, settings, cancel))
    except PipelineError as e:
        log_json(logger, logging.ERROR, "pipeline_failed", cmd=args.cmd, error=str(e), kind=type(e).__name__)
        return EXIT_FAILED

    return EXIT_OK
