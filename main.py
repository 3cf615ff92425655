# main.py

"""
aimtrack command line.

Run examples:
    python main.py scan --stats-dir "C:/Games/FPSAimTrainer/stats"
    python main.py watch --log-level DEBUG
    python main.py rescan
    python main.py serve --port 5000
"""

import argparse
import logging
import os
import time

from aimtrack.config import IngestConfig
from aimtrack.database import Database
from aimtrack.pipeline import IngestionPipeline


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import aim-trainer stat exports into a local database")
    parser.add_argument("--stats-dir", default="", help="Stats folder (defaults to AIMTRACK_STATS_DIR or ./stats)")
    parser.add_argument("--db", default="", help="SQLite DB path (defaults to AIMTRACK_DB_PATH or data/aimtrack.db)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("AIMTRACK_LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ...)",
    )
    parser.add_argument("--polling", action="store_true", help="Use a polling observer instead of native events")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("scan", help="Run the startup scan (full on first run, incremental afterwards)")
    sub.add_parser("rescan", help="Full rescan of the stats folder; duplicates are skipped")
    sub.add_parser("watch", help="Startup scan, then watch for new runs until Ctrl+C")
    serve = sub.add_parser("serve", help="Start the web host (pipeline + new-run relay)")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = IngestConfig.from_env(stats_dir=args.stats_dir or None, db_path=args.db or None)
    if args.polling:
        config.use_polling = True

    if args.command == "serve":
        import uvicorn

        os.environ["AIMTRACK_STATS_DIR"] = config.stats_dir
        os.environ["AIMTRACK_DB_PATH"] = config.db_path
        os.environ["AIMTRACK_USE_POLLING"] = "1" if config.use_polling else "0"
        print("Starting aimtrack web host...")
        print(f"Open http://{args.host}:{args.port}/api/status in your browser")
        uvicorn.run("web.app:app", host=args.host, port=args.port)
        return 0

    if not os.path.isdir(config.stats_dir):
        print(f"Stats folder not found: {config.stats_dir}")
        return 1

    db = Database(config.db_path)
    pipeline = IngestionPipeline(config, db)
    try:
        if args.command == "rescan":
            pipeline.rescan().print_summary("FULL RESCAN")
            return 0

        pipeline.run_startup_scan().print_summary("STARTUP SCAN")

        if args.command == "watch":
            if not pipeline.watcher.start():
                return 1
            print(f"Watching {config.stats_dir} - press Ctrl+C to stop")
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                print("\nStopping watcher...")
            finally:
                pipeline.stop()
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
