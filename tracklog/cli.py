#!/usr/bin/env python3
"""
CLI entry point for the tracklog recorder.

Defines the following commands:
  tracklog record NAME <fixes.csv> [--speedup X] [--preset walking|driving]
  tracklog serve NAME [--port 8000]
  tracklog status NAME
  tracklog config NAME KEY VALUE
  tracklog version
"""

import sys
from argparse import ArgumentParser, Namespace
from importlib.metadata import PackageNotFoundError, version as _get_version

import uvicorn

from tracklog.parsers.fixes_csv import iter_fixes
from tracklog.recording.config import MANAGED_KEYS, RecorderConfig
from tracklog.recording.service import RecordingService
from tracklog.recording.source import ReplaySource
from tracklog.server import create_app, db_path_for
from tracklog.storage.dao import DAO
from tracklog.utils.log import get_logger

logger = get_logger(__name__)

PRESETS = {
    "walking": RecorderConfig.walking,
    "driving": RecorderConfig.driving,
}


def record(name: str, csv_path: str, speedup: float, preset: str) -> None:
    """
    Record one track by replaying fixes from a CSV file.

    Parameters
    ----------
    name
        Recorder name, which dictates the SQLite database file name.
    csv_path
        CSV of fixes (see tracklog.parsers.fixes_csv).
    speedup
        Replay speed relative to the fix timestamps; 0 replays at once.
    preset
        Name of the default tunables preset.
    """
    logger.info("Record: name=%s, csv=%s, speedup=%s, preset=%s", name, csv_path, speedup, preset)
    db_path = db_path_for(name)
    source = ReplaySource(iter_fixes(csv_path), speedup=speedup)
    service = RecordingService(lambda: DAO(db_path), source, config=PRESETS[preset]())
    try:
        if service.is_recording():
            logger.info("Resumed track %d", service.status().track_id)
        else:
            service.start_new_track()
        source.join()
        service.drain()
        status = service.status()
        service.end_current_track()
        logger.info("Track %d recorded: %.1f m", status.track_id, status.length)
    finally:
        source.stop()
        service.close()


def serve(name: str, port: int) -> None:
    """
    Spin up FastAPI+Uvicorn to drive the recorder over HTTP.

    Parameters
    ----------
    name
        Recorder name, which dictates the SQLite database file name.
    port
        Port on which to serve HTTP.
    """
    logger.info("Serve: name=%s, port=%d", name, port)
    app = create_app(name)
    uvicorn.run(app, host="127.0.0.1", port=port)


def status(name: str) -> None:
    """
    Log the active track (if any) and the latest track of the database.
    """
    dao = DAO(db_path_for(name))
    try:
        active = dao.get_active_track()
        last_id = dao.get_last_track_id()
        if active is not None:
            logger.info(
                "Active track %d (%s): %d points, %.1f m",
                active.id, active.name, active.num_points, active.statistics.total_distance,
            )
        else:
            logger.info("No active track")
        if last_id >= 0:
            last = dao.get_track(last_id)
            logger.info(
                "Last track %d (%s): %d points, %.1f m, %d markers",
                last.id, last.name, last.num_points, last.statistics.total_distance,
                len(dao.get_markers(last_id)),
            )
        for key, value in sorted(dao.get_preferences().items()):
            logger.info("  %s = %s", key, value)
    finally:
        dao.close()


def config(name: str, key: str, value: str) -> None:
    """
    Persist one preference; a running recorder picks it up on its next start.
    """
    if key in MANAGED_KEYS:
        logger.error("%s is managed by the recorder", key)
        sys.exit(1)
    dao = DAO(db_path_for(name))
    try:
        dao.set_preference(key, value)
    finally:
        dao.close()
    logger.info("Set %s = %s", key, value)


def version() -> None:
    """
    Print the installed tracklog package version.
    """
    try:
        ver = _get_version("tracklog")
    except PackageNotFoundError:
        ver = "unknown"
    logger.info("tracklog version %s", ver)


def parse_args(argv: list[str] | None = None) -> Namespace:
    """
    Parse command-line arguments and return the populated namespace.
    """
    parser = ArgumentParser(prog="tracklog")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # tracklog record
    p = subparsers.add_parser("record", help="Record a track from a CSV of fixes.")
    p.add_argument("name", type=str, help="Recorder name.")
    p.add_argument("csv", type=str, help="CSV file of fixes.")
    p.add_argument(
        "--speedup", type=float, default=0.0, help="Replay speed factor (0 = as fast as possible)."
    )
    p.add_argument(
        "--preset", choices=sorted(PRESETS), default="walking", help="Default tunables."
    )

    # tracklog serve
    p = subparsers.add_parser("serve", help="Serve via FastAPI + Uvicorn.")
    p.add_argument("name", type=str, help="Recorder name.")
    p.add_argument(
        "--port", type=int, default=8000, help="Port number to serve on."
    )

    # tracklog status
    p = subparsers.add_parser("status", help="Show the recorder database status.")
    p.add_argument("name", type=str, help="Recorder name.")

    # tracklog config
    p = subparsers.add_parser("config", help="Set a preference.")
    p.add_argument("name", type=str, help="Recorder name.")
    p.add_argument("key", type=str, help="Preference key.")
    p.add_argument("value", type=str, help="Preference value.")

    # tracklog version
    subparsers.add_parser("version", help="Show tracklog version and exit.")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """
    Entry point: dispatch to the selected subcommand.
    """
    args = parse_args(argv)
    match args.command:
        case "record":
            record(args.name, args.csv, args.speedup, args.preset)
        case "serve":
            serve(args.name, args.port)
        case "status":
            status(args.name)
        case "config":
            config(args.name, args.key, args.value)
        case "version":
            version()
        case _:
            sys.exit(1)


if __name__ == "__main__":
    main()
