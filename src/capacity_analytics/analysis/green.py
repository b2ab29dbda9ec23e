"""Power, electricity cost and CO2 estimates for the cluster.

The power model is deliberately simple: CPU draw scales with utilization
from a per-core TDP, memory draws a fixed amount per GB, and every
estimated physical server adds a fixed overhead.  The facility PUE
multiplies the IT load.
"""

from __future__ import annotations

import math

from capacity_analytics.data.models import (
    GIB,
    Co2Block,
    CostBlock,
    GreenEfficiencyBlock,
    GreenMetrics,
    HardwareProfile,
    PowerBlock,
)

HOURS_PER_DAY = 24
DAYS_PER_MONTH = 30
DAYS_PER_YEAR = 365


def _it_watts(
    profile: HardwareProfile,
    cpu_used_percent: float,
    total_cpu_cores: float,
    total_ram_bytes: float,
) -> float:
    servers = max(1, math.ceil(total_cpu_cores / profile.avg_cores_per_server))
    cpu_watts = profile.tdp_per_core * total_cpu_cores * (cpu_used_percent / 100)
    ram_watts = profile.watts_per_gb_ram * (total_ram_bytes / GIB)
    overhead_watts = profile.overhead_per_node * servers
    return cpu_watts + ram_watts + overhead_watts


def green_score(
    cpu_used_percent: float,
    running_vms: int,
    total_vms: int,
    efficiency: float,
    pue: float,
) -> int:
    """Energy efficiency score, 0 to 100.

    Starts at 100.  Low CPU utilization, a large share of stopped guests and
    a poor PUE cost points; good allocation efficiency and an excellent PUE
    earn some back.  All adjustments are summed before clamping.
    """
    score = 100

    if cpu_used_percent < 10:
        score -= 20
    elif cpu_used_percent < 20:
        score -= 10
    elif cpu_used_percent < 30:
        score -= 5

    stopped_ratio = (total_vms - running_vms) / total_vms if total_vms > 0 else 0.0
    if stopped_ratio > 0.5:
        score -= 15
    elif stopped_ratio > 0.3:
        score -= 10
    elif stopped_ratio > 0.2:
        score -= 5

    if efficiency > 70:
        score += 10
    elif efficiency > 50:
        score += 5

    if pue > 1.8:
        score -= 15
    elif pue > 1.5:
        score -= 10
    elif pue > 1.3:
        score -= 5
    elif pue <= 1.2:
        score += 5

    return max(0, min(100, score))


def calculate_green_metrics(
    cpu_used_percent: float,
    total_cpu_cores: float,
    total_ram_bytes: float,
    running_vms: int,
    total_vms: int,
    efficiency: float,
    profile: HardwareProfile | None = None,
) -> GreenMetrics:
    """Estimate power draw, energy, cost and emissions.

    Coefficients come from *profile*; a missing profile or a zero
    coefficient falls back to the defaults of :class:`HardwareProfile`.
    Each granularity is computed from the instantaneous draw, so hourly,
    daily, monthly and yearly figures agree up to rounding.
    """
    profile = (profile or HardwareProfile()).with_defaults()

    it_watts = _it_watts(profile, cpu_used_percent, total_cpu_cores, total_ram_bytes)
    total_watts = it_watts * profile.pue
    max_watts = _it_watts(profile, 100.0, total_cpu_cores, total_ram_bytes) * profile.pue

    hourly_kwh = total_watts / 1000
    daily_kwh = hourly_kwh * HOURS_PER_DAY
    monthly_kwh = daily_kwh * DAYS_PER_MONTH
    yearly_kwh = daily_kwh * DAYS_PER_YEAR

    factor = profile.co2_factor
    yearly_co2 = yearly_kwh * factor

    price = profile.electricity_price
    vm_per_kw = round(running_vms / hourly_kwh, 1) if hourly_kwh > 0 else 0.0

    return GreenMetrics(
        power=PowerBlock(
            current=round(total_watts),
            max=round(max_watts),
            monthly=round(monthly_kwh),
            yearly=round(yearly_kwh),
        ),
        co2=Co2Block(
            hourly=round(hourly_kwh * factor, 3),
            daily=round(daily_kwh * factor, 2),
            monthly=round(monthly_kwh * factor, 1),
            yearly=round(yearly_co2),
            factor=factor,
            equivalent_km_car=round(yearly_co2 / profile.km_car),
            equivalent_trees=round(yearly_co2 / profile.tree_per_year, 1),
            equivalent_smartphone_charges=round(yearly_co2 / profile.smartphone_charge),
        ),
        cost=CostBlock(
            hourly=round(hourly_kwh * price, 2),
            daily=round(daily_kwh * price, 2),
            monthly=round(monthly_kwh * price),
            yearly=round(yearly_kwh * price),
            price_per_kwh=price,
        ),
        efficiency=GreenEfficiencyBlock(
            pue=profile.pue,
            vm_per_kw=vm_per_kw,
            score=green_score(
                cpu_used_percent, running_vms, total_vms, efficiency, profile.pue
            ),
        ),
    )
