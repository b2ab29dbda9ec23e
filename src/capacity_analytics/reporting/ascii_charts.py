# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Terminal-friendly visualizations using Unicode characters.

These functions return Rich-markup strings that render as usage bars,
sparklines, and score gauges in the terminal via the Rich library.
"""

from __future__ import annotations

BLOCKS = " ▁▂▃▄▅▆▇█"


def _usage_color(pct: float) -> str:
    """High utilization is the warning sign: red above 90, yellow above 70."""
    if pct >= 90:
        return "red"
    if pct >= 70:
        return "yellow"
    return "green"


def _score_color(score: float) -> str:
    if score >= 80:
        return "green"
    if score >= 50:
        return "yellow"
    return "red"


def usage_bar(label: str, pct: float, width: int = 20) -> str:
    """Utilization bar: ``CPU ████░░░░ 45.2%``."""
    clamped = max(0.0, min(100.0, pct))
    filled = int(clamped / 100 * width)
    bar = "█" * filled + "░" * (width - filled)
    return f"{label} [{_usage_color(clamped)}]{bar}[/] {clamped:.1f}%"


def score_gauge(score: float, width: int = 20) -> str:
    """Gauge for 0-100 scores, where higher is better."""
    clamped = max(0.0, min(100.0, score))
    filled = int(clamped / 100 * width)
    color = _score_color(clamped)
    bar = "█" * filled + "░" * (width - filled)
    return f"[{color}]{bar}[/] {clamped:.0f}/100"


def sparkline(values: list[float], width: int | None = None) -> str:
    """Render a sparkline using Unicode block characters.

    If width is given and len(values) > width, values are downsampled by
    averaging consecutive buckets.
    """
    if not values:
        return ""

    if width and len(values) > width:
        step = len(values) / width
        sampled = []
        for i in range(width):
            start = int(i * step)
            end = max(int((i + 1) * step), start + 1)
            sampled.append(sum(values[start:end]) / (end - start))
        values = sampled

    min_v = min(values)
    max_v = max(values)
    range_v = max_v - min_v or 1

    return "".join(BLOCKS[int((v - min_v) / range_v * 8)] for v in values)


def trend_arrow(delta: float) -> str:
    """``+2.5 ↑`` style marker for a trend in percentage points."""
    if delta > 0:
        return f"[red]+{delta:.1f} ↑[/]"
    if delta < 0:
        return f"[green]{delta:.1f} ↓[/]"
    return "[dim]0.0 →[/]"


def format_bytes(value: float) -> str:
    """Human-readable binary size: ``1.5 TiB``."""
    size = float(value)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(size) < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TiB"


def format_rate(value: float) -> str:
    """Human-readable byte rate: ``12.3 MiB/s``."""
    return f"{format_bytes(value)}/s"
