"""Network I/O metrics from node history and guest inventory."""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, timedelta
from typing import Any

from capacity_analytics.data.models import (
    GuestSnapshot,
    NetworkMetrics,
    NetworkNode,
    NetworkTrendPoint,
    NetworkVm,
    NodeKey,
    RawSample,
)
from capacity_analytics.telemetry.densifier import format_day_label, utc_today
from capacity_analytics.telemetry.normalizer import day_key_for

NETWORK_WINDOW_DAYS = 30
TOP_NETWORK_VMS = 5


def _rate(value: Any) -> float:
    """Bytes per second, with anything unusable read as no traffic."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def top_network_guests(
    guests: Iterable[GuestSnapshot], limit: int = TOP_NETWORK_VMS
) -> list[NetworkVm]:
    """Running guests with the most combined in + out traffic."""
    busy = [
        g for g in guests
        if g.is_running and (g.netin > 0 or g.netout > 0)
    ]
    busy.sort(key=lambda g: g.netin + g.netout, reverse=True)
    return [
        NetworkVm(id=g.id, name=g.name, node=g.node, netin=g.netin, netout=g.netout)
        for g in busy[:limit]
    ]


def build_network_metrics(
    node_history: Mapping[NodeKey, Sequence[RawSample]],
    guests: Iterable[GuestSnapshot],
    today: date | None = None,
) -> NetworkMetrics | None:
    """Summarize network traffic over the last :data:`NETWORK_WINDOW_DAYS` days.

    Only history points carrying some traffic are considered.  Per node the
    result is the mean rate over those points.  The daily trend sums, for
    each day, the per-node mean of that day.  Returns ``None`` when no node
    reported any traffic.

    *node_history* is the same series fetched for the utilization trends,
    so its resolution follows ``EngineSettings.history_timeframe``.  With
    the default ``year`` window that is about one point per day, coarser
    than a dedicated ``month`` series (about two points per day) would give.
    Intraday peaks are smoothed out.
    """
    today = today or utc_today()
    cutoff = today - timedelta(days=NETWORK_WINDOW_DAYS)

    per_node: list[NetworkNode] = []
    by_day: dict[date, dict[NodeKey, tuple[list[float], list[float]]]] = defaultdict(dict)

    for key, samples in node_history.items():
        netin_values: list[float] = []
        netout_values: list[float] = []
        for raw in samples:
            day = day_key_for(raw.time)
            if day is None or day < cutoff:
                continue
            netin = _rate(raw.netin)
            netout = _rate(raw.netout)
            if netin <= 0 and netout <= 0:
                continue
            netin_values.append(netin)
            netout_values.append(netout)
            day_in, day_out = by_day[day].setdefault(key, ([], []))
            day_in.append(netin)
            day_out.append(netout)

        if netin_values:
            per_node.append(
                NetworkNode(
                    name=key.node,
                    netin=_mean(netin_values),
                    netout=_mean(netout_values),
                )
            )

    trends = []
    for day in sorted(by_day)[-NETWORK_WINDOW_DAYS:]:
        nodes = by_day[day].values()
        trends.append(
            NetworkTrendPoint(
                label=format_day_label(day),
                day=day,
                netin=sum(_mean(day_in) for day_in, _ in nodes),
                netout=sum(_mean(day_out) for _, day_out in nodes),
            )
        )

    total_in = sum(n.netin for n in per_node)
    total_out = sum(n.netout for n in per_node)
    if total_in <= 0 and total_out <= 0 and not trends:
        return None

    return NetworkMetrics(
        total_in=total_in,
        total_out=total_out,
        per_node=per_node,
        trends=trends,
        top_vms=top_network_guests(guests),
    )
