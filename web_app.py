from __future__ import annotations

import json
import logging
import math
import time
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

APP_ROOT = Path(__file__).resolve().parent
load_dotenv(APP_ROOT / ".env")

# Ensure session and gate logging is visible when running under uvicorn
for _name in ("abstrack.session", "abstrack.gate", "abstrack.ledger", "abstrack.scoring"):
    logging.getLogger(_name).setLevel(logging.INFO)

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse

from abstrack.bonuses import build_bonus_context
from abstrack.gate import CooldownActive, GateError, record_from_stats
from abstrack.geometry import GeometryError
from abstrack.ledger import InMemoryLedger
from abstrack.pose import frame_from_landmarks
from abstrack.schemas import ChallengeIn, ScoreRequest, SubmissionIn
from abstrack.scoring import score_breakdown
from abstrack.session import SessionAggregator
from abstrack.settings import load_policy

logger = logging.getLogger(__name__)

app = FastAPI(title="AbsTrack")

POLICY = load_policy()
LEDGER = InMemoryLedger(POLICY)
# Replaced in tests to control time.
clock = time.time


_INDEX_PAGE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>AbsTrack</title>
    <style>
      body { font-family: -apple-system, BlinkMacSystemFont, sans-serif; background: #07090d; color: #f0f4f8; }
      .wrap { max-width: 720px; margin: 0 auto; padding: 40px 24px; }
      code { color: #22d3ee; }
      .muted { color: #94a3b8; }
    </style>
  </head>
  <body>
    <div class="wrap">
      <h1>AbsTrack</h1>
      <p class="muted">Rep counting, form accuracy and composite scoring for abs sessions.</p>
      <ul>
        <li><code>WS /ws/live</code> stream landmark frames, receive rep state</li>
        <li><code>POST /score</code> composite score estimate</li>
        <li><code>POST /sessions</code> submit a finished session</li>
        <li><code>GET /leaderboard</code> ranked lifetime totals</li>
        <li><code>GET /challenge</code> current daily challenge</li>
      </ul>
    </div>
  </body>
</html>"""


@app.get("/", response_class=HTMLResponse)
def index() -> HTMLResponse:
    return HTMLResponse(_INDEX_PAGE)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/score")
def score(req: ScoreRequest) -> dict[str, Any]:
    try:
        ctx = req.to_context(clock())
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return score_breakdown(req.stats.to_inputs(), ctx, POLICY).to_dict()


@app.get("/challenge")
def get_challenge() -> dict[str, Any]:
    challenge = LEDGER.challenge
    if challenge is None or not challenge.is_active(clock()):
        return {"active": False}
    out = challenge.to_dict()
    out["active"] = True
    out["remaining_seconds"] = max(0, int(challenge.expires_at - clock()))
    return out


@app.put("/challenge")
def put_challenge(body: ChallengeIn) -> dict[str, Any]:
    try:
        spec = body.to_spec()
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unknown challenge kind: {body.kind}")
    LEDGER.set_challenge(spec, clock())
    return spec.to_dict()


@app.post("/sessions")
def submit(body: SubmissionIn) -> dict[str, Any]:
    record = body.to_record(POLICY.default_region)
    try:
        entry, breakdown = LEDGER.submit(body.user, record, clock())
    except CooldownActive as e:
        raise HTTPException(status_code=429, detail=e.to_dict())
    except GateError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    out = entry.to_dict()
    out["breakdown"] = breakdown.to_dict()
    return out


@app.get("/sessions/cooldown/{user}")
def cooldown(user: str) -> dict[str, Any]:
    return {"user": user, "remaining_seconds": LEDGER.gate.remaining_cooldown(user, clock())}


@app.get("/leaderboard")
def leaderboard(limit: Optional[int] = Query(default=None, ge=1)) -> list[dict[str, Any]]:
    return [row.to_dict() for row in LEDGER.leaderboard(limit)]


@app.get("/users/{user}")
def user_aggregate(user: str) -> dict[str, Any]:
    agg = LEDGER.user(user)
    if agg is None:
        raise HTTPException(status_code=404, detail="User has no sessions.")
    return agg.to_dict()


@app.get("/users/{user}/sessions")
def user_sessions(user: str) -> list[dict[str, Any]]:
    return [s.to_dict() for s in LEDGER.user_sessions(user)]


def _ts(payload: dict[str, Any]) -> float:
    """Timestamp carried by a live message; the server clock when absent."""
    t = payload.get("t")
    if t is None:
        return clock()
    if isinstance(t, bool):
        raise TypeError(f"timestamp must be a number, got {t!r}")
    ts = float(t)
    if not math.isfinite(ts):
        raise ValueError(f"timestamp must be finite, got {t!r}")
    return ts


def _error(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


def _session_summary(aggregator: SessionAggregator, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Finalize the session and score it. Every field of the stop message is
    checked first, so a rejected message leaves the session open.
    """
    now = _ts(payload)
    region = payload.get("region") or POLICY.default_region
    if not isinstance(region, str):
        raise TypeError(f"region must be a string, got {region!r}")
    user = payload.get("user")
    if user is not None and not isinstance(user, str):
        raise TypeError(f"user must be a string, got {user!r}")
    month = payload.get("month")
    if month is None:
        month = time.gmtime(now).tm_mon
    elif isinstance(month, bool) or not isinstance(month, (int, str)):
        raise TypeError(f"month must be an integer, got {month!r}")
    challenge = LEDGER.challenge
    claimed = bool(user) and challenge is not None and LEDGER.claims.is_claimed(challenge, user)
    ctx = build_bonus_context(int(month), region, challenge, claimed=claimed, now=now)

    stats = aggregator.finalize(now)
    breakdown = score_breakdown(stats, ctx, POLICY)
    return {
        "type": "summary",
        "stats": stats.to_dict(),
        "score": breakdown.to_dict(),
        "record": record_from_stats(stats, region).to_dict(),
    }


@app.websocket("/ws/live")
async def live_socket(websocket: WebSocket) -> None:
    await websocket.accept()
    logger.info("live: session started")
    aggregator: Optional[SessionAggregator] = None
    frame_idx = 0
    skipped = 0
    try:
        while True:
            msg = await websocket.receive_text()
            try:
                payload = json.loads(msg)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type")
            if kind == "stop":
                if aggregator is None:
                    aggregator = SessionAggregator(start_timestamp=clock(), policy=POLICY)
                try:
                    summary = _session_summary(aggregator, payload)
                except (TypeError, ValueError) as e:
                    logger.warning("live: rejected stop message: %s", e)
                    await websocket.send_text(json.dumps(_error(str(e))))
                    continue
                logger.info("live: stop received, rep_count=%s skipped=%s", aggregator.state.rep_count, skipped)
                await websocket.send_text(json.dumps(summary))
                await websocket.close()
                return
            if kind == "reset":
                try:
                    now = _ts(payload)
                except (TypeError, ValueError) as e:
                    await websocket.send_text(json.dumps(_error(str(e))))
                    continue
                if aggregator is not None:
                    aggregator.reset(now)
                continue
            landmarks = payload.get("landmarks")
            if not landmarks:
                continue
            try:
                ts = _ts(payload)
                frame = frame_from_landmarks(landmarks)
            except (KeyError, TypeError, ValueError) as e:
                skipped += 1
                logger.debug("live: malformed frame skipped: %s", e)
                continue
            if aggregator is None:
                aggregator = SessionAggregator(start_timestamp=ts, policy=POLICY)
            try:
                state = aggregator.process_frame(frame)
                status = "tracking"
            except GeometryError as e:
                skipped += 1
                state = aggregator.state
                status = str(e)
            frame_idx += 1
            out = state.to_dict()
            out["status"] = status
            await websocket.send_text(json.dumps(out))
    except WebSocketDisconnect:
        logger.info("live: client disconnected (frames=%s skipped=%s)", frame_idx, skipped)
        return


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=8000, reload=True)
