"""
Session pipeline: landmark frames -> hinge angle -> reps -> session stats ->
advisory composite score. Saves session metrics and the report on finish.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Iterable, Optional

from .bonuses import build_bonus_context
from .gate import SubmissionGate, SubmissionRecord, record_from_stats
from .geometry import InsufficientConfidence
from .ledger import InMemoryLedger, SessionEntry
from .pose import JointFrame
from .report import write_session_report
from .scoring import ChallengeSpec, score_breakdown
from .session import SessionAggregator
from .settings import DEFAULT_POLICY, Policy

logger = logging.getLogger(__name__)

# Log a progress line every this many frames.
PROGRESS_EVERY_N_FRAMES = 300


def run_session_pipeline(
    frames: Iterable[tuple[JointFrame, int, float]],
    region: Optional[str] = None,
    month: Optional[int] = None,
    challenge: Optional[ChallengeSpec] = None,
    challenge_claimed: bool = False,
    policy: Policy = DEFAULT_POLICY,
    output_dir: Optional[str] = None,
    source: str = "recording",
) -> dict[str, Any]:
    """
    Consume frames in order and return the session summary:
    {"stats", "score", "record", "challenge", "frames", "skipped_frames"}.
    When output_dir is given, writes session_metrics.json and report.html.
    """
    region = region or policy.default_region
    aggregator: Optional[SessionAggregator] = None
    last_ts: Optional[float] = None
    n_frames = 0
    skipped = 0
    last_rep_count = 0

    for frame, frame_idx, ts in frames:
        if aggregator is None:
            aggregator = SessionAggregator(start_timestamp=ts, policy=policy)
        last_ts = ts
        n_frames += 1
        try:
            state = aggregator.process_frame(frame)
        except InsufficientConfidence as e:
            skipped += 1
            logger.debug("frame %s skipped: %s", frame_idx, e)
            continue
        if state.rep_count > last_rep_count:
            last_rep_count = state.rep_count
            logger.info("live_rep: rep %s at frame %s (accuracy=%s)", state.rep_count, frame_idx, state.last_form_accuracy)
        if n_frames % PROGRESS_EVERY_N_FRAMES == 0:
            logger.info("live: frame %s (rep_count=%s)", frame_idx, state.rep_count)

    now = last_ts if last_ts is not None else time.time()
    if aggregator is None:
        aggregator = SessionAggregator(start_timestamp=now, policy=policy)
    stats = aggregator.finalize(now)

    if month is None:
        month = time.gmtime(now).tm_mon
    ctx = build_bonus_context(month, region, challenge, claimed=challenge_claimed, now=now)
    breakdown = score_breakdown(stats, ctx, policy)
    summary = {
        "stats": stats.to_dict(),
        "score": breakdown.to_dict(),
        "record": record_from_stats(stats, region).to_dict(),
        "challenge": challenge.to_dict() if challenge is not None else None,
        "frames": n_frames,
        "skipped_frames": skipped,
    }
    logger.info(
        "live: session done frames=%s skipped=%s reps=%s score=%s",
        n_frames, skipped, stats.total_reps, breakdown.total,
    )

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        metrics_path = os.path.join(output_dir, "session_metrics.json")
        with open(metrics_path, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)
        write_session_report(metrics_path, output_dir, source=source)
    return summary


def submit_session(
    summary: dict[str, Any],
    user: str,
    gate: SubmissionGate,
    ledger: InMemoryLedger,
    now: Optional[float] = None,
) -> SessionEntry:
    """
    Pass a finished session through the client gate, then hand it to the
    ledger, which re-checks everything and computes the authoritative score.
    """
    now = time.time() if now is None else now
    record = SubmissionRecord(**summary["record"])
    gate.try_submit(user, record, now)
    entry, breakdown = ledger.submit(user, record, now)
    advisory = summary.get("score", {}).get("total")
    if advisory is not None and advisory != breakdown.total:
        logger.info("ledger score %s differs from advisory estimate %s", breakdown.total, advisory)
    return entry
