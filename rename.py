#!/usr/bin/env python3
"""
CLI batch renamer — sends receipts through the relay and writes renamed copies.

Usage:
    python rename.py --input-dir ./receipts --output-dir ./renamed
    python rename.py --file ./receipts/scan01.pdf --output-dir ./renamed --user-id alice
"""

from __future__ import annotations

import argparse
import asyncio
import functools
import glob
import logging
import mimetypes
import os
import sys

import httpx

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from backend import config
from backend.models import FileHandle, TrackedFile
from backend.upload.batch import BatchOrchestrator
from backend.upload.client import relay_url, submit_file
from backend.upload.download import download_name, unique_name
from backend.upload.store import ResultStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger("rename")

mimetypes.add_type("image/webp", ".webp")
mimetypes.add_type("image/svg+xml", ".svg")


# ── Input collection ─────────────────────────────────────────────────────────

def _guess_type(path: str) -> str:
    content_type, _ = mimetypes.guess_type(path)
    return content_type or "application/octet-stream"


def _collect_files(paths: list[str]) -> list[FileHandle]:
    """Read *paths* into FileHandles, in the order given."""
    handles = []
    for path in paths:
        with open(path, "rb") as f:
            data = f.read()
        handles.append(
            FileHandle(name=os.path.basename(path), content_type=_guess_type(path), data=data)
        )
    return handles


# ── Output ───────────────────────────────────────────────────────────────────

def _write_renamed(output_dir: str, records: list[TrackedFile]) -> list[str]:
    """Write each completed record under its new name; existing files are never overwritten."""
    os.makedirs(output_dir, exist_ok=True)
    taken = set(os.listdir(output_dir))
    written = []
    for record in records:
        name = unique_name(download_name(record), taken)
        taken.add(name)
        path = os.path.join(output_dir, name)
        with open(path, "wb") as f:
            f.write(record.file.data)
        written.append(path)
    return written


# ── Relay connectivity check ─────────────────────────────────────────────────

def _check_relay(base_url: str) -> bool:
    """Verify the relay is reachable and configured. Returns True if OK."""
    logger.info("[CHECK] Relay %s ...", base_url)
    try:
        response = httpx.get(f"{base_url.rstrip('/')}/health", timeout=10.0)
        response.raise_for_status()
        health = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("[CHECK] Relay FAIL: %s", exc)
        return False

    if not health.get("workflow_configured"):
        logger.error("[CHECK] Relay is up but DIFY_API_URL / DIFY_API_KEY are not set")
        return False
    logger.info("[CHECK] Relay OK")
    return True


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Rename receipts via the Dify workflow relay")
    parser.add_argument("--file", action="append", default=[], help="A single file (repeatable)")
    parser.add_argument("--input-dir", help="Directory containing receipts")
    parser.add_argument("--output-dir", required=True, help="Where renamed copies are written")
    parser.add_argument("--user-id", default=config.DEFAULT_USER_ID, help="User id sent to the workflow")
    parser.add_argument("--backend-url", default=config.BACKEND_URL, help="Relay base URL")
    parser.add_argument(
        "--interval", type=float, default=config.REQUEST_INTERVAL,
        help="Seconds to wait between files (default %(default)s)",
    )
    parser.add_argument(
        "--skip-checks", action="store_true",
        help="Skip the relay connectivity check",
    )
    args = parser.parse_args(argv)

    paths = [os.path.abspath(p) for p in args.file]
    if args.input_dir:
        input_dir = os.path.abspath(args.input_dir)
        paths += sorted(
            p for p in glob.glob(os.path.join(input_dir, "*")) if os.path.isfile(p)
        )
    if not paths:
        logger.error("No input files given.")
        return 1

    if not args.skip_checks and not _check_relay(args.backend_url):
        logger.error("Relay check failed. Use --skip-checks to bypass.")
        return 1

    store = ResultStore()
    added = store.add_files(_collect_files(paths))
    skipped = len(paths) - len(added)
    if not added:
        logger.error("None of the %d file(s) is a supported type under 15MB.", len(paths))
        return 1

    submit = functools.partial(
        submit_file, user_id=args.user_id, url=relay_url(args.backend_url)
    )
    stats = asyncio.run(BatchOrchestrator(store, submit, interval=args.interval).run())
    written = _write_renamed(args.output_dir, store.completed())

    logger.info("=" * 60)
    logger.info("RENAME SUMMARY")
    logger.info("  Completed: %d", stats.completed)
    logger.info("  Failed:    %d", stats.errors)
    logger.info("  Skipped:   %d (unsupported type or too large)", skipped)
    logger.info("  Written:   %d file(s) to %s", len(written), args.output_dir)
    for record in store.records():
        if record.error:
            logger.info("  [ERROR] %s: %s", record.name, record.error)
    logger.info("=" * 60)

    return 1 if stats.errors else 0


if __name__ == "__main__":
    sys.exit(main())
