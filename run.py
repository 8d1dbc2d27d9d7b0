#!/usr/bin/env python3
"""
Abs session scoring from landmark recordings.
Usage:
  Recording: python run.py --recording path/to/session.jsonl
  Stream:    some_pose_tool | python run.py --stdin [--region desert] [--submit]
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()
load_dotenv(Path(__file__).resolve().parent / ".env")

from abstrack.bonuses import new_challenge
from abstrack.gate import GateError, SubmissionGate
from abstrack.io_stream import recording_frames, stream_frames
from abstrack.ledger import InMemoryLedger
from abstrack.live import run_session_pipeline, submit_session
from abstrack.settings import load_policy


def _parse_challenge(raw: str | None, issued_at: float):
    """KIND:TARGET:MULTIPLIER_BPS, e.g. reps:20:12000."""
    if not raw:
        return None
    try:
        kind, target, multiplier = raw.split(":")
        return new_challenge(kind, int(target), int(multiplier), issued_at)
    except (KeyError, ValueError) as e:
        raise ValueError(f"bad --challenge {raw!r}, expected KIND:TARGET:MULTIPLIER_BPS") from e


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Abs session scoring: landmark recording or live stream")
    ap.add_argument("--recording", type=str, default=None, help="Path to landmark recording (JSON or JSON lines)")
    ap.add_argument("--stdin", action="store_true", help="Read JSON-lines landmark frames from stdin")
    ap.add_argument("--region", type=str, default=None, help="Climate region for the regional bonus")
    ap.add_argument("--month", type=int, default=None, help="Month (1-12) for the seasonal bonus (default: current)")
    ap.add_argument("--challenge", type=str, default=None, help="Active challenge as KIND:TARGET:MULTIPLIER_BPS")
    ap.add_argument("--user", type=str, default="local", help="User id for --submit")
    ap.add_argument("--submit", action="store_true", help="Submit through the gate into the in-memory ledger")
    ap.add_argument("--output-dir", type=str, default="outputs", help="Output directory")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.stdin and args.recording:
        print("Error: provide exactly one of --recording or --stdin", file=sys.stderr)
        return 1
    if not args.stdin and not args.recording:
        print("Error: provide --recording PATH or --stdin", file=sys.stderr)
        return 1
    if args.recording and not os.path.isfile(args.recording):
        print(f"Error: recording not found: {args.recording}", file=sys.stderr)
        return 1

    policy = load_policy()
    try:
        challenge = _parse_challenge(args.challenge, time.time())
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.stdin:
        frames = stream_frames(sys.stdin, t0=time.time())
        source = "stdin"
    else:
        frames = recording_frames(args.recording)
        source = "recording"

    summary = run_session_pipeline(
        frames,
        region=args.region,
        month=args.month,
        challenge=challenge,
        policy=policy,
        output_dir=args.output_dir,
        source=source,
    )
    stats = summary["stats"]
    print(
        f"Reps: {stats['total_reps']}  Avg accuracy: {stats['average_form_accuracy']}%  "
        f"Best streak: {stats['best_streak']}  Duration: {stats['elapsed_seconds']}s  "
        f"Score (estimate): {summary['score']['total']}"
    )

    if args.submit:
        ledger = InMemoryLedger(policy)
        ledger.set_challenge(challenge)
        try:
            entry = submit_session(summary, args.user, SubmissionGate(policy), ledger)
        except GateError as e:
            print(f"Submission rejected: {json.dumps(e.to_dict())}", file=sys.stderr)
            return 1
        print(f"Submitted for {entry.user}: ledger score {entry.score}")
    print(f"Report: {args.output_dir}/report.html")
    return 0


if __name__ == "__main__":
    sys.exit(main())
