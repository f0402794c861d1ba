"""
Tests for the exotic ticket comparison table
Run with: pytest tests/test_exotic_comparison.py -v
"""

import pytest

from backend.core.exotics import PoolType, Structure
from backend.core.race_types import Entrant
from backend.services.exotic_comparison import (
    Selection,
    compare_race_structures,
    compare_structures,
)
from backend.services.race_analysis import analyze_race


def _make_selections():
    return [
        Selection(entrant_id="1", decimal_odds=2.6, model_probability=0.35),
        Selection(entrant_id="4", decimal_odds=9.0, model_probability=0.21),
        Selection(entrant_id="2", decimal_odds=3.5, model_probability=0.23),
        Selection(entrant_id="3", decimal_odds=5.0, model_probability=0.13),
    ]


class TestCompareStructures:
    """Ranking and budget filtering"""

    def test_rows_sorted_by_ev(self):
        table = compare_structures(_make_selections(), budget=100.0)
        evs = [r.expected_value for r in table.rows]
        assert evs == sorted(evs, reverse=True)

    def test_recommended_is_top_row(self):
        table = compare_structures(_make_selections(), budget=100.0)
        assert table.recommended is table.rows[0]
        assert table.rows[0].is_recommended
        assert sum(r.is_recommended for r in table.rows) == 1

    def test_budget_respected(self):
        table = compare_structures(_make_selections(), budget=5.0)
        assert all(r.cost.total_cost <= 5.0 for r in table.rows)
        assert table.skipped_over_budget > 0

    def test_pools_filter(self):
        table = compare_structures(_make_selections(), budget=100.0, pools=[PoolType.EXACTA])
        assert table.rows
        assert all(r.spec.pool_type is PoolType.EXACTA for r in table.rows)

    def test_straight_uses_model_ranking(self):
        table = compare_structures(_make_selections(), budget=100.0, pools=[PoolType.EXACTA])
        straight = [r for r in table.rows if r.spec.structure is Structure.STRAIGHT][0]
        assert straight.spec.position_sets == (("1",), ("2",))

    def test_payout_band_ordered(self):
        table = compare_structures(_make_selections(), budget=100.0)
        for row in table.rows:
            assert row.payout.min <= row.payout.likely <= row.payout.max
            assert 0.0 <= row.hit_probability <= 1.0

    def test_tie_break_fewer_combinations(self):
        # Rows with equal EV list the cheaper ticket first.
        table = compare_structures(_make_selections(), budget=100.0)
        for a, b in zip(table.rows, table.rows[1:]):
            if a.expected_value == pytest.approx(b.expected_value, abs=1e-12):
                assert a.combinations <= b.combinations

    def test_empty_inputs(self):
        assert compare_structures([], budget=50.0).rows == []
        assert compare_structures(_make_selections(), budget=0.0).rows == []

    def test_too_few_for_superfecta(self):
        table = compare_structures(_make_selections()[:3], budget=100.0, pools=[PoolType.SUPERFECTA])
        assert table.rows == []


class TestCompareRace:

    def test_from_analysis(self):
        rows = [("1", 2.0, "8-5"), ("2", 1.6, "5-2"), ("3", 1.0, "4-1"),
                ("4", 1.5, "8-1"), ("5", 0.2, "10-1"), ("6", -0.5, "15-1")]
        analysis = analyze_race([Entrant.from_odds_string(*r) for r in rows], temperature=1.0)
        table = compare_race_structures(analysis, budget=30.0, top_n=4, pools=[PoolType.EXACTA, PoolType.TRIFECTA])
        assert table.rows
        ids_used = {e for r in table.rows for s in r.spec.position_sets for e in s}
        assert ids_used <= {"1", "2", "3", "4"}
