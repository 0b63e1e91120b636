import pytest

from combinations import Combination, build_combinations, make_xy_column_names, needed_columns


class TestColumnNames:
    """Per-method (uncertainty, quality) column naming."""

    @pytest.mark.parametrize("method,expected", [
        ("MCd", ("tumor_paireddiceMCd_0.2_seg_union_mean_49", "tumor_dice_0.2_seg_union_UQ_meanMC_49")),
        ("ckp-DE", ("tumor_paireddiceDE_0.2_seg_union_mean_49", "tumor_dice__UQ_meanDE_0.2_seg_union_49")),
        ("DE", ("tumor_paireddiceDE_0.2_DE_union_mean_49", "tumor_dice__UQ_meanDE_0.2_DE_union_49")),
        ("TTA", ("tumor_paireddiceMCd_0.2_flip_seg_union_mean_49", "tumor_dice_0.2_flip_seg_union_UQ_meanMC_49")),
        ("OOD", ("tumor_dice_diff_2_0.2_30", "tumor_dice_0.2_30")),
    ])
    def test_methods(self, method, expected):
        assert make_xy_column_names(method, 0.2, "dice", "_union", "mean", "49") == expected

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown method"):
            make_xy_column_names("SWAG", 0.1, "dice", "", "mean", "49")


class TestBuildCombinations:
    """Enumeration of experiment combinations."""

    def test_counts_per_method(self):
        combos = build_combinations(["Brats_last_final"], ["MCd", "TTA", "DE", "OOD"])
        counts = {m: sum(c.method == m for c in combos) for m in ("MCd", "TTA", "DE", "OOD")}

        assert counts["MCd"] == 5 * 2 * 5 * 4
        assert counts["TTA"] == 6 * 2 * 5 * 4
        assert counts["DE"] == 1 * 2 * 5 * 4
        assert counts["OOD"] == 6 * 2

    def test_ood_has_no_aggregation(self):
        combos = build_combinations(["LUNG_last_final"], ["OOD"])
        assert {(c.aggregation, c.metric_aggregation) for c in combos} == {("", "")}

    def test_datasets_are_crossed(self):
        combos = build_combinations(["a", "b"], ["DE"])
        assert {c.dataset for c in combos} == {"a", "b"}
        assert len(combos) == 2 * 40

    def test_needed_columns_are_unique(self):
        combos = [
            Combination("a", "MCd", 0.1, "dice", "", "mean"),
            Combination("a", "MCd", 0.1, "dice", "", "max"),
        ]
        cols = needed_columns(combos, "49")
        # the quality column is shared by both combinations
        assert len(cols) == 3
        assert len(set(cols)) == 3
