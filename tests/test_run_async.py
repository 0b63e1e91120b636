import asyncio

import numpy as np
import pytest

from combinations import Combination
from run_async import (TraceRecord, load_results_json, run_fan_out_sync, save_results_json, unit_rng)

SWEEP = [0.6, 0.7, 0.8]
GRID = list(np.linspace(0.025, 1.0, 40))


def make_provider(available):
    return lambda combination: available.get(combination)


@pytest.fixture
def columns(paired_samples):
    scores, quality = paired_samples
    return scores, quality


class TestFanOut:
    """Combination fan-out on worker threads."""

    def test_unavailable_combination_is_skipped(self, combination, columns):
        missing = Combination("LUNG_last_final", "TTA", 0.0, "dice", "", "mean")
        provider = make_provider({combination: columns})

        records = run_fan_out_sync([combination, missing], [0.05], provider,
                                   quality_thresholds=SWEEP, quantile_grid=GRID, bootstrap_count=20, seed=1)

        assert len(records) == 1
        assert records[0].dataset == combination.dataset
        assert records[0].method == combination.method
        assert records[0].xs == tuple(SWEEP)
        assert len(records[0].th) == len(records[0].ys) == len(SWEEP)

    def test_one_record_per_fnr_sorted(self, columns):
        combos = [
            Combination("b", "TTA", 0.0, "dice", "", "mean"),
            Combination("a", "MCd", 0.1, "dice", "", "mean"),
        ]
        provider = make_provider({c: columns for c in combos})

        records = run_fan_out_sync(combos, [0.08, 0.02], provider, quality_thresholds=SWEEP,
                                   quantile_grid=GRID, bootstrap_count=10, seed=1)

        assert [(r.dataset, r.fnr) for r in records] == [("a", 0.02), ("a", 0.08), ("b", 0.02), ("b", 0.08)]

    def test_results_do_not_depend_on_concurrency(self, columns):
        combos = [Combination("a", "MCd", dl, "dice", "", "mean") for dl in (0.1, 0.2, 0.3)]
        provider = make_provider({c: columns for c in combos})
        kwargs = dict(quality_thresholds=SWEEP, quantile_grid=GRID, bootstrap_count=30, seed=11)

        sequential = run_fan_out_sync(combos, [0.02, 0.05], provider, max_concurrent=1, **kwargs)
        parallel = run_fan_out_sync(combos, [0.02, 0.05], provider, max_concurrent=8, **kwargs)

        assert sequential == parallel

    def test_units_get_independent_generators(self, combination):
        a = unit_rng(42, combination, 0.02).random(4)
        b = unit_rng(42, combination, 0.04).random(4)
        again = unit_rng(42, combination, 0.02).random(4)

        np.testing.assert_array_equal(a, again)
        assert not np.array_equal(a, b)

    def test_failing_unit_aborts_run(self, combination):
        provider = make_provider({combination: ([0.1, 0.2], [0.9])})

        with pytest.raises(ValueError, match="same length"):
            run_fan_out_sync([combination], [0.05], provider, quality_thresholds=SWEEP,
                             quantile_grid=GRID, bootstrap_count=5)

    def test_bad_configuration_fails_before_any_unit(self, combination):
        def provider(_):
            raise AssertionError("provider must not be called")

        with pytest.raises(ValueError):
            run_fan_out_sync([combination], [0.05], provider, quality_thresholds=SWEEP,
                             quantile_grid=GRID, bootstrap_count=0)
        with pytest.raises(ValueError):
            run_fan_out_sync([combination], [1.2], provider, quality_thresholds=SWEEP,
                             quantile_grid=GRID, bootstrap_count=5)


class TestTraceRecord:
    """Result record and its JSON export."""

    def test_curve_lengths_must_match(self):
        with pytest.raises(ValueError):
            TraceRecord("a", "MCd", 0.1, "dice", "", "mean", 0.02, (0.6, 0.7), (0.1,), (0.9, 1.0))

    def test_json_keeps_missing_values(self, tmp_path, sample_records):
        path = tmp_path / "precomputed.json"

        asyncio.run(save_results_json(sample_records, str(path)))
        loaded = load_results_json(str(path))

        assert loaded == sample_records
        assert loaded[0].th[2] is None
        assert "null" in path.read_text(encoding="utf-8")
