#!/usr/bin/env python3
"""
Desktop barcode scanner.

Opens a local camera, runs the recognition loop (or waits for Enter in manual
mode) and prints the first ISBN it accepts. With --lookup it also fetches the
book metadata.

    python scan.py                     # continuous detection on camera 0
    python scan.py --manual            # press Enter to capture
    python scan.py --source 1 --lookup
"""
import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

import cv2

from bookscan.arbitrator import Arbitrator
from bookscan.camera import OpenCVDevices
from bookscan.config import DEFAULT_SECRETS_PATH, ConfigError, load_config_file
from bookscan.diagnostics import run_diagnostics
from bookscan.models import ScanState
from bookscan.services import BookLookupService
from bookscan.session import ScanSession

logger = logging.getLogger("scan")

WINDOW = "bookscan"


class PreviewSink:
    """Shows the frames the session analyses in an OpenCV window."""

    def attach(self, stream):
        cv2.namedWindow(WINDOW, cv2.WINDOW_NORMAL)

    def show(self, frame):
        cv2.imshow(WINDOW, frame.to_bgr())
        cv2.waitKey(1)

    def detach(self):
        cv2.destroyWindow(WINDOW)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan a book barcode with a local camera.")
    parser.add_argument("--source", action="append", help="Camera index or stream URL (repeatable)")
    parser.add_argument("--device", help="Device id to open (defaults to the first camera)")
    parser.add_argument("--manual", action="store_true", help="Capture on Enter instead of polling")
    parser.add_argument("--secrets", type=Path, default=DEFAULT_SECRETS_PATH, help="Path to secrets.toml")
    parser.add_argument("--min-confidence", type=float, help="Override the acceptance threshold")
    parser.add_argument("--preview", action="store_true", help="Show the camera feed in a window")
    parser.add_argument("--lookup", action="store_true", help="Look up the scanned ISBN")
    parser.add_argument("--diagnose", action="store_true", help="Print camera diagnostics and exit")
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    return parser.parse_args(argv)


async def _manual_loop(session: ScanSession):
    while session.state is ScanState.AWAITING_MANUAL_CAPTURE:
        line = await asyncio.to_thread(input, "Enter to capture, q to quit: ")
        if line.strip().lower() == "q":
            session.close()
            return
        if session.closed:
            return
        outcome = await session.capture()
        if not outcome.found:
            print("No ISBN recognized.")
            if session.should_hint_manual_entry:
                print("Still nothing. Consider typing the ISBN instead.")


async def run(args: argparse.Namespace) -> int:
    config = load_config_file(args.secrets)
    if args.manual:
        config = replace(config, continuous=False)
    if args.min_confidence is not None:
        config = replace(config, min_confidence=args.min_confidence)

    devices = OpenCVDevices(sources=args.source)
    arbitrator = Arbitrator.from_config(config)

    if args.diagnose:
        for r in run_diagnostics(devices, arbitrator):
            print(f"[{r.status:>7}] {r.test}: {r.message}")
        return 0

    def on_state_change(prev, new):
        # nobody is around to press "retry" in a terminal
        if new is ScanState.ERROR:
            asyncio.get_running_loop().call_soon(session.close)

    session = ScanSession(
        devices,
        arbitrator,
        config=config,
        on_scan=lambda isbn: print(f"ISBN: {isbn}"),
        on_state_change=on_state_change,
        sink=PreviewSink() if args.preview else None,
    )
    try:
        await session.open(args.device)
        if session.state is ScanState.AWAITING_MANUAL_CAPTURE:
            await _manual_loop(session)
        isbn = await session.wait()
    finally:
        session.close()

    if session.error is not None:
        err = session.error
        print(f"Camera problem ({err.category.value}): {err}", file=sys.stderr)
        return 2

    if not isbn:
        return 1
    if args.lookup:
        book = BookLookupService(config.google_books_key).by_isbn(isbn)
        if book:
            print(f"{book.title} — {book.author} ({book.published_date}) [{book.source}]")
        else:
            print("No metadata found.")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper()),
                        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%H:%M:%S")
    try:
        return asyncio.run(run(args))
    except ConfigError as e:
        logger.error("invalid configuration: %s", e)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
