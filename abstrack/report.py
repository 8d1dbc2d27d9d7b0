"""
Session summary: report.html + accuracy plot from session_metrics.json.
"""
from __future__ import annotations

import html
import json
import logging
import os
from typing import Any, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Accuracy (0..100) at or above which a rep is shown as good form.
GOOD_FORM_ACCURACY = 80


def load_session_metrics(metrics_path: str) -> dict[str, Any]:
    with open(metrics_path, encoding="utf-8") as f:
        return json.load(f)


def _cv(vals: list[int]) -> Optional[float]:
    if len(vals) < 2:
        return None
    arr = np.asarray(vals, dtype=float)
    m = float(arr.mean())
    if abs(m) < 1e-6:
        return None
    return float(arr.std(ddof=1)) / abs(m)


def _tips(history: list[int], best_streak: int) -> list[str]:
    tips = []
    if not history:
        return ["No reps detected. Make sure shoulders, hips and knees are in frame."]
    good = sum(1 for a in history if a >= GOOD_FORM_ACCURACY)
    good_pct = good / len(history) * 100.0
    if good_pct < 70:
        tips.append("Curl up until your torso is about 55 degrees from your thighs.")
    cv = _cv(history)
    if cv is not None and cv > 0.25:
        tips.append("Aim for the same range of motion on every rep.")
    if best_streak < len(history) // 2:
        tips.append("Slow down and chain good-form reps together to build a streak.")
    if not tips:
        tips.append("Nice work. Keep the same cues next set.")
    return tips


def write_session_report(
    metrics_path: str,
    output_dir: str,
    source: str = "live",
) -> str:
    """
    Load session_metrics.json and write report.html (plus accuracy_by_rep.png
    when matplotlib is available). Returns the report path.
    """
    os.makedirs(output_dir, exist_ok=True)
    data = load_session_metrics(metrics_path)
    stats = data.get("stats", {})
    score = data.get("score") or {}
    challenge = data.get("challenge")
    history = [int(a) for a in stats.get("accuracy_history", [])]
    reps = int(stats.get("total_reps", len(history)))
    best_streak = int(stats.get("best_streak", 0))

    logger.info(
        "report input: source=%s metrics_path=%s reps=%s avg_accuracy=%s best_streak=%s score=%s",
        source, metrics_path, reps, stats.get("average_form_accuracy"), best_streak, score.get("total"),
    )

    lines = [
        "<!DOCTYPE html>",
        "<html><head><meta charset='utf-8'><title>Abs Session Report</title></head><body>",
        "<h1>Abs Session Report</h1>",
        f"<p><b>Source:</b> {html.escape(source)}</p>",
        f"<p><b>Total reps:</b> {reps}</p>",
        f"<p><b>Average form accuracy:</b> {stats.get('average_form_accuracy', '--')}%</p>",
        f"<p><b>Best streak:</b> {best_streak}</p>",
        f"<p><b>Duration:</b> {stats.get('elapsed_seconds', 0)} s</p>",
    ]
    if score:
        lines.append("<h2>Composite score</h2>")
        lines.append(
            f"<p><b>Base:</b> {score.get('base')} | "
            f"<b>Weather multiplier:</b> {score.get('weather_multiplier_bps')} bps | "
            f"<b>After weather:</b> {score.get('after_weather')} | "
            f"<b>Total:</b> {score.get('total')}</p>"
        )
    if challenge:
        state = "applied" if score.get("challenge_applied") else (
            "met (already claimed)" if score.get("challenge_met") else "not met"
        )
        lines.append(
            f"<p><b>Daily challenge:</b> {html.escape(str(challenge.get('description', '')))} ({state})</p>"
        )

    lines.append("<h2>Tips</h2>")
    lines.append("<p>" + " ".join(html.escape(t) for t in _tips(history, best_streak)) + "</p>")

    lines.append("<h2>Per-rep accuracy</h2>")
    lines.append("<table border='1'><tr><th>Rep</th><th>Form accuracy</th><th>Good form</th></tr>")
    for i, acc in enumerate(history):
        good = "yes" if acc >= GOOD_FORM_ACCURACY else "no"
        lines.append(
            f'<tr><td data-label="Rep">{i + 1}</td>'
            f'<td data-label="Form accuracy">{acc}</td>'
            f'<td data-label="Good form">{good}</td></tr>'
        )
    lines.append("</table></body></html>")

    report_path = os.path.join(output_dir, "report.html")
    with open(report_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
    logger.info("report written: %s", report_path)

    if history:
        try:
            _plot_accuracy(history, os.path.join(output_dir, "accuracy_by_rep.png"))
        except ImportError:
            logger.info("matplotlib not installed; skipping accuracy plot")
    return report_path


def _plot_accuracy(history: list[int], path: str) -> None:
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    plt.figure(figsize=(6, 4))
    plt.plot(range(1, len(history) + 1), history, "o-")
    plt.axhline(GOOD_FORM_ACCURACY, color="gray", linestyle="--", linewidth=1)
    plt.ylim(0, 105)
    plt.xlabel("Rep")
    plt.ylabel("Form accuracy")
    plt.title("Form accuracy by rep")
    plt.savefig(path, dpi=100)
    plt.close()
