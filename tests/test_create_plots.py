from dataclasses import replace

import numpy as np

from create_plots import (FILTER_FIELDS, MAX_VISIBLE_TRACES, default_selection, filter_options, plot_interactive,
                          plot_precision_curves, records_to_frame, select_traces)


class TestPlots:
    """Interactive and static plot outputs."""

    def test_records_to_frame(self, sample_records):
        df = records_to_frame(sample_records)

        assert len(df) == 9
        assert np.isnan(df.loc[2, "precision"])
        assert np.isnan(df.loc[2, "threshold"])

    def test_interactive_html(self, tmp_path, sample_records):
        out = tmp_path / "robust_curves_full.html"

        fig = plot_interactive(sample_records, str(out), default_fnr=0.02)

        assert len(fig.data) == len(sample_records)
        # default selection: the fields of the first record at the closest FNR
        assert [trace.visible for trace in fig.data] == [True, False, False]
        page = out.read_text(encoding="utf-8")
        for field in FILTER_FIELDS:
            assert f'<select id="{field}" multiple' in page
        assert '<option value="TTA">TTA</option>' in page
        assert '<option value="MCd" selected>MCd</option>' in page
        assert '<option value="0.02" selected>0.02</option>' in page
        assert '<option value="_union">_union</option>' in page

    def test_default_selection_follows_fnr(self, sample_records):
        selection = default_selection(sample_records, default_fnr=0.04)

        assert selection["method"] == ["TTA"]
        assert selection["fnr"] == [0.04]
        assert all(len(values) == 1 for values in selection.values())
        assert select_traces(sample_records, selection) == [False, True, False]

    def test_filter_options(self, sample_records):
        options = filter_options(sample_records)

        assert options["dataset"] == ["Brats_last_final", "LUNG_last_final"]
        assert options["drop_level"] == [0.0, 0.1, 0.2]
        assert options["aggregation"] == ["", "_union"]

    def test_multi_select(self, sample_records):
        selection = {field: values for field, values in filter_options(sample_records).items()}

        assert select_traces(sample_records, selection) == [True, True, True]
        selection["dataset"] = ["LUNG_last_final"]
        assert select_traces(sample_records, selection) == [False, False, True]

    def test_visible_traces_are_capped(self, sample_records):
        base = sample_records[0]
        records = [replace(base, xs=(0.6 + i / 1000, 0.7, 0.8)) for i in range(MAX_VISIBLE_TRACES + 5)]

        visible = select_traces(records, default_selection(records))

        assert sum(visible) == MAX_VISIBLE_TRACES
        assert visible[:MAX_VISIBLE_TRACES] == [True] * MAX_VISIBLE_TRACES

    def test_static_figures_per_dataset(self, tmp_path, sample_records):
        written = plot_precision_curves(sample_records, str(tmp_path / "figures"), fnr=0.02)

        assert len(written) == 2
        assert all((tmp_path / "figures" / p.split("/")[-1]).exists() for p in written)
