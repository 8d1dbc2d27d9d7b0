"""
Unified frame generator for landmark recordings or a live line stream.
Yields (frame, frame_idx, timestamp_sec).
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Generator, IO, Iterable, Optional

from .pose import JointFrame, frame_from_landmarks

logger = logging.getLogger(__name__)

# Frame rate assumed when a recording carries no timestamps.
DEFAULT_FPS = 30.0


def _entry_to_frame(
    entry: Any,
    idx: int,
    fps: float,
    t0: Optional[float],
) -> tuple[JointFrame, float]:
    if isinstance(entry, dict):
        landmarks = entry.get("landmarks") or entry.get("keypoints") or []
        t = entry.get("t", entry.get("timestamp"))
    else:
        landmarks, t = entry, None
    ts = float(t) if t is not None else (t0 or 0.0) + idx / fps
    return frame_from_landmarks(landmarks), ts


def _iter_entries(entries: Iterable[Any], fps: float, t0: Optional[float]) -> Generator[tuple[JointFrame, int, float], None, None]:
    idx = 0
    for entry in entries:
        try:
            frame, ts = _entry_to_frame(entry, idx, fps, t0)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("skipping malformed frame %s: %s", idx, e)
            idx += 1
            continue
        yield (frame, idx, ts)
        idx += 1


def _json_lines(lines: Iterable[str]) -> Generator[Any, None, None]:
    for n, line in enumerate(lines):
        line = line.strip()
        if not line:
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError:
            logger.debug("skipping non-JSON line %s", n + 1)


def stream_frames(
    lines: IO[str] | Iterable[str],
    fps: float = DEFAULT_FPS,
    t0: Optional[float] = None,
) -> Generator[tuple[JointFrame, int, float], None, None]:
    """
    Yield frames from a stream of JSON lines ({"t": seconds, "landmarks": [...]}).
    Malformed lines are skipped.
    """
    yield from _iter_entries(_json_lines(lines), fps, t0)


def recording_frames(
    path: str,
    fps: float = DEFAULT_FPS,
) -> Generator[tuple[JointFrame, int, float], None, None]:
    """
    Yield frames from a recording: either JSON lines, or one JSON document
    {"fps": .., "frames": [{"t": .., "landmarks": [...]}, ...]}.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Cannot open recording: {path}")
    with open(path, encoding="utf-8") as f:
        text = f.read()
    try:
        doc = json.loads(text)
    except json.JSONDecodeError:
        doc = None
    if isinstance(doc, dict) and "frames" in doc:
        frames = doc["frames"]
        fps = float(doc.get("fps") or fps)
        yield from _iter_entries(frames, fps, None)
    elif isinstance(doc, list):
        yield from _iter_entries(doc, fps, None)
    else:
        yield from stream_frames(text.splitlines(), fps=fps)
