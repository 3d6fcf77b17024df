from __future__ import annotations

import math

import pytest

from zedata.accumulating import (
    AccumulationState,
    WeightedPoint,
    accumulate_average,
    accumulate_sum,
)
from zedata.errors import AccumulationStateError

POINTS = [WeightedPoint(v, 1.0) for v in (1.0, 2.0, 4.0, 8.0, 3.0, 6.0, 5.0)]


def test_lifecycle_computes_weighted_mean():
    mean = WeightedPoint()
    assert mean.accumulation_state is AccumulationState.IDLE
    mean.start_accumulation()
    mean.accumulate(WeightedPoint(1.0, 1.0))
    mean.accumulate(WeightedPoint(4.0, 3.0))
    assert mean.accumulation_state is AccumulationState.ACCUMULATING
    mean.end_accumulation()
    assert mean.accumulation_state is AccumulationState.FINALIZED
    assert mean.value == pytest.approx((1.0 + 12.0) / 4.0)
    assert mean.weight == pytest.approx(4.0)


def test_gain_is_divided_out():
    mean = WeightedPoint()
    mean.start_accumulation()
    mean.accumulate(WeightedPoint(6.0, 1.0), 1.0, 2.0)
    mean.end_accumulation()
    assert mean.value == pytest.approx(3.0)
    assert mean.weight == pytest.approx(4.0)


def test_end_accumulation_twice_fails_loudly():
    mean = WeightedPoint()
    mean.start_accumulation()
    mean.accumulate(WeightedPoint(2.0, 1.0))
    mean.end_accumulation()
    with pytest.raises(AccumulationStateError):
        mean.end_accumulation()
    assert mean.value == pytest.approx(2.0)


def test_out_of_order_calls_are_rejected():
    point = WeightedPoint()
    with pytest.raises(AccumulationStateError):
        point.accumulate(WeightedPoint(1.0, 1.0))
    with pytest.raises(AccumulationStateError):
        point.end_accumulation()
    point.start_accumulation()
    with pytest.raises(AccumulationStateError):
        point.start_accumulation()


def test_restart_after_finalize_clears_sums():
    mean = WeightedPoint()
    mean.start_accumulation()
    mean.accumulate(WeightedPoint(10.0, 1.0))
    mean.end_accumulation()
    mean.start_accumulation()
    mean.accumulate(WeightedPoint(2.0, 1.0))
    mean.end_accumulation()
    assert mean.value == pytest.approx(2.0)


def test_empty_accumulation_has_no_data():
    mean = WeightedPoint(5.0, 1.0)
    mean.start_accumulation()
    mean.end_accumulation()
    assert math.isnan(mean.value)
    assert mean.is_nan()


@pytest.mark.parametrize("partitions", [1, 2, 3, 7, 10])
def test_partitioned_average_matches_direct(partitions: int):
    direct = WeightedPoint()
    direct.start_accumulation()
    for p in POINTS:
        direct.accumulate(p)
    direct.end_accumulation()

    result = accumulate_average(POINTS, WeightedPoint, partitions=partitions)
    assert result.value == pytest.approx(direct.value)
    assert result.weight == pytest.approx(direct.weight)


def test_sum_is_still_accumulating_and_mergeable():
    total = accumulate_sum(POINTS[:3], WeightedPoint)
    assert total.accumulation_state is AccumulationState.ACCUMULATING
    rest = accumulate_sum(POINTS[3:], WeightedPoint, partitions=2)
    total.merge(rest)
    total.end_accumulation()
    assert total.value == pytest.approx(sum(p.value for p in POINTS) / len(POINTS))


def test_merging_a_finalized_partial_is_rejected():
    total = accumulate_sum(POINTS, WeightedPoint)
    done = accumulate_average(POINTS, WeightedPoint)
    with pytest.raises(AccumulationStateError):
        total.merge(done)


def test_weighted_point_arithmetic():
    a = WeightedPoint(2.0, 4.0)
    a.add(WeightedPoint(1.0, 4.0))
    assert a.value == pytest.approx(3.0)
    assert a.weight == pytest.approx(2.0)

    b = WeightedPoint(2.0, 4.0)
    b.scale(2.0)
    assert b.value == pytest.approx(4.0)
    assert b.rms() == pytest.approx(1.0)

    c = WeightedPoint(1.0, 1.0)
    c.average(WeightedPoint(4.0, 2.0))
    assert c.value == pytest.approx(3.0)
    assert c.weight == pytest.approx(3.0)

    exact = WeightedPoint(1.0, 1.0)
    exact.zero()
    assert exact.is_exact()
    d = WeightedPoint(5.0, 2.0)
    d.add(exact)
    assert d.weight == pytest.approx(2.0)
    assert str(WeightedPoint(1.5, 4.0)) == "1.5 +- 0.5"
