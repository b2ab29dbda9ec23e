# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Tests for daily grouping, weighted averaging and the trend indicator."""

from __future__ import annotations

from datetime import date

import pytest

from capacity_analytics.data.models import DayReadings, NodeCapacity, NodeKey, RawSample
from capacity_analytics.telemetry.daily import aggregate_node_days, aggregate_storage_days
from capacity_analytics.telemetry.trend import calculate_trend
from capacity_analytics.telemetry.weighted import compute_global_averages

from conftest import GIB, epoch

D1 = date(2025, 3, 1)
D2 = date(2025, 3, 2)


def _key(node: str) -> NodeKey:
    return NodeKey(connection_id="c1", node=node)


# ---------------------------------------------------------------------------
# Daily grouping
# ---------------------------------------------------------------------------

class TestAggregateNodeDays:
    def test_groups_by_day(self):
        capacity = NodeCapacity(max_cpu_cores=4, max_mem_bytes=8 * GIB)
        samples = [
            RawSample(time=epoch(D1, 1), cpu=0.1, memused=2 * GIB, memtotal=8 * GIB),
            RawSample(time=epoch(D1, 13), cpu=0.3, memused=4 * GIB, memtotal=8 * GIB),
            RawSample(time=epoch(D2, 1), cpu=0.5),
        ]
        by_day, diag = aggregate_node_days(samples, capacity)

        assert sorted(by_day) == [D1, D2]
        assert by_day[D1].cpu == pytest.approx([10.0, 30.0])
        assert by_day[D1].ram == pytest.approx([25.0, 50.0])
        assert by_day[D2].cpu == pytest.approx([50.0])
        assert by_day[D2].ram == []
        assert diag.stage == "node_samples"

    def test_days_without_readings_removed(self):
        capacity = NodeCapacity(max_cpu_cores=4, max_mem_bytes=0)
        samples = [RawSample(time=epoch(D1), cpu=None, memused=None)]
        by_day, diag = aggregate_node_days(samples, capacity)
        assert by_day == {}
        assert diag.rejected_reasons["cpu_missing"] == 1

    def test_untimed_samples_skipped(self):
        by_day, diag = aggregate_node_days([RawSample(cpu=0.5)], NodeCapacity())
        assert by_day == {}
        assert diag.rejected_reasons == {"missing_time": 1}


class TestAggregateStorageDays:
    def test_accumulates_into_shared_mapping(self):
        shared: dict = {}
        aggregate_storage_days([RawSample(time=epoch(D1), used=10, total=100)], 0, into=shared)
        aggregate_storage_days([RawSample(time=epoch(D1), used=30, total=100)], 0, into=shared)
        assert shared[D1] == pytest.approx([10.0, 30.0])

    def test_gap_points_not_counted_as_zero(self):
        by_day, diag = aggregate_storage_days(
            [RawSample(time=epoch(D1), used=None), RawSample(time=epoch(D2), used=5)],
            live_total_bytes=10,
        )
        assert list(by_day) == [D2]
        assert by_day[D2] == pytest.approx([50.0])
        assert diag.accepted == 1


# ---------------------------------------------------------------------------
# Weighted average
# ---------------------------------------------------------------------------

class TestWeightedAverage:
    @pytest.mark.parametrize("b_cores, expected", [(8, 50.0), (24, 65.0)])
    def test_weight_sensitivity_example(self, b_cores, expected):
        """A: 8 cores at 20%; B: 8 or 24 cores at 80%."""
        nodes_by_day = {
            _key("a"): {D1: DayReadings(cpu=[20.0], ram=[50.0])},
            _key("b"): {D1: DayReadings(cpu=[80.0], ram=[50.0])},
        }
        capacities = {
            _key("a"): NodeCapacity(max_cpu_cores=8, max_mem_bytes=GIB),
            _key("b"): NodeCapacity(max_cpu_cores=b_cores, max_mem_bytes=GIB),
        }
        averages, _ = compute_global_averages(nodes_by_day, capacities)
        assert averages[D1].cpu_percent == pytest.approx(expected)

    def test_capacity_weighting_differs_from_simple_mean(self):
        """A busy small node must not dominate an idle large one."""
        nodes_by_day = {
            _key("small"): {D1: DayReadings(cpu=[80.0], ram=[50.0])},
            _key("large"): {D1: DayReadings(cpu=[20.0], ram=[50.0])},
        }
        capacities = {
            _key("small"): NodeCapacity(max_cpu_cores=4, max_mem_bytes=GIB),
            _key("large"): NodeCapacity(max_cpu_cores=16, max_mem_bytes=GIB),
        }
        averages, _ = compute_global_averages(nodes_by_day, capacities)

        # (80*4 + 20*16) / 20 = 32, not the simple mean of 50
        assert averages[D1].cpu_percent == pytest.approx(32.0)
        assert averages[D1].contributing_node_count == 2

    def test_equal_nodes_weighting(self):
        nodes_by_day = {
            _key("a"): {D1: DayReadings(cpu=[40.0, 60.0], ram=[50.0])},
            _key("b"): {D1: DayReadings(cpu=[80.0], ram=[80.0])},
        }
        capacities = {
            _key("a"): NodeCapacity(max_cpu_cores=8, max_mem_bytes=64 * GIB),
            _key("b"): NodeCapacity(max_cpu_cores=8, max_mem_bytes=64 * GIB),
        }
        averages, _ = compute_global_averages(nodes_by_day, capacities)
        assert averages[D1].cpu_percent == pytest.approx(65.0)
        assert averages[D1].ram_percent == pytest.approx(65.0)

    def test_ram_weighted_by_memory(self):
        nodes_by_day = {
            _key("a"): {D1: DayReadings(ram=[80.0])},
            _key("b"): {D1: DayReadings(ram=[20.0])},
        }
        capacities = {
            _key("a"): NodeCapacity(max_cpu_cores=8, max_mem_bytes=64 * GIB),
            _key("b"): NodeCapacity(max_cpu_cores=8, max_mem_bytes=192 * GIB),
        }
        averages, _ = compute_global_averages(nodes_by_day, capacities)
        # (80*64 + 20*192) / 256 = 35
        assert averages[D1].ram_percent == pytest.approx(35.0)
        assert averages[D1].cpu_percent == 0.0

    def test_near_idle_node_excluded(self):
        nodes_by_day = {
            _key("busy"): {D1: DayReadings(cpu=[50.0], ram=[60.0])},
            _key("empty"): {D1: DayReadings(cpu=[0.0], ram=[2.0])},
        }
        capacities = {
            _key("busy"): NodeCapacity(max_cpu_cores=8, max_mem_bytes=GIB),
            _key("empty"): NodeCapacity(max_cpu_cores=64, max_mem_bytes=GIB),
        }
        averages, diag = compute_global_averages(nodes_by_day, capacities)

        assert averages[D1].cpu_percent == pytest.approx(50.0)
        assert averages[D1].ram_percent == pytest.approx(60.0)
        assert averages[D1].contributing_node_count == 1
        assert diag.rejected_reasons["near_idle"] == 1

    def test_node_without_ram_still_counts_for_cpu(self):
        nodes_by_day = {_key("a"): {D1: DayReadings(cpu=[30.0])}}
        capacities = {_key("a"): NodeCapacity(max_cpu_cores=8, max_mem_bytes=GIB)}
        averages, _ = compute_global_averages(nodes_by_day, capacities)
        assert averages[D1].cpu_percent == pytest.approx(30.0)

    def test_day_without_signal_not_emitted(self):
        nodes_by_day = {_key("a"): {D1: DayReadings(cpu=[0.0])}}
        capacities = {_key("a"): NodeCapacity(max_cpu_cores=8)}
        averages, diag = compute_global_averages(nodes_by_day, capacities)
        assert averages == {}
        assert diag.rejected_reasons["no_signal_day"] == 1

    def test_unknown_capacity_ignored(self):
        nodes_by_day = {_key("ghost"): {D1: DayReadings(cpu=[50.0], ram=[50.0])}}
        averages, _ = compute_global_averages(nodes_by_day, {})
        assert averages == {}

    def test_result_rounded_to_one_decimal(self):
        nodes_by_day = {_key("a"): {D1: DayReadings(cpu=[10.0, 10.0, 11.0], ram=[33.333])}}
        capacities = {_key("a"): NodeCapacity(max_cpu_cores=1, max_mem_bytes=1)}
        averages, _ = compute_global_averages(nodes_by_day, capacities)
        assert averages[D1].cpu_percent == 10.3
        assert averages[D1].ram_percent == 33.3


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------

class TestTrend:
    def test_rising(self):
        assert calculate_trend([10, 20, 30, 40]) == pytest.approx(20.0)

    def test_step_change(self):
        assert calculate_trend([10, 10, 90, 90]) == 80.0

    def test_falling(self):
        assert calculate_trend([40, 40, 10, 10]) == pytest.approx(-30.0)

    def test_odd_length_extra_in_second_half(self):
        # first [10], second [20, 30]
        assert calculate_trend([10, 20, 30]) == pytest.approx(15.0)

    @pytest.mark.parametrize("values", [[], [42.0]])
    def test_too_short(self, values):
        assert calculate_trend(values) == 0.0

    def test_rounded(self):
        assert calculate_trend([0, 0, 0, 1 / 3]) == 0.2
