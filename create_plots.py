import html
import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
import plotly.graph_objects as go

from run_async import TraceRecord
from utils import trace_key


def records_to_frame(records: Sequence[TraceRecord]) -> pd.DataFrame:
    """Long format: one row per (record, quality cutoff); missing values become NaN."""
    rows = []
    for r in records:
        for qt, th, prec in zip(r.xs, r.th, r.ys):
            rows.append({
                "dataset": r.dataset,
                "method": r.method,
                "drop_level": r.drop_level,
                "metric": r.metric,
                "aggregation": r.aggregation,
                "metric_aggregation": r.metric_aggregation,
                "fnr": r.fnr,
                "quality_threshold": qt,
                "threshold": np.nan if th is None else th,
                "precision": np.nan if prec is None else prec,
            })
    return pd.DataFrame(rows)


# filter panel of the interactive page, in display order
FILTER_FIELDS = ("method", "dataset", "fnr", "drop_level", "metric", "aggregation", "metric_aggregation")
MAX_VISIBLE_TRACES = 20
PLOT_DIV_ID = "robust-curves"

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Robust Curves</title>
</head>
<body>
<div id="filters" style="display:flex; gap:20px; flex-wrap:wrap; margin-bottom:20px;">
{filters}
</div>
<p>At most {limit} matching traces are shown.</p>
{plot}
<script>
const traceKeys = {trace_keys};
const fields = {fields};
const limit = {limit};

function chosen(id) {{
    return Array.from(document.getElementById(id).selectedOptions).map(o => o.value);
}}

function updatePlot() {{
    const selection = fields.map(chosen);
    let count = 0;
    const visible = traceKeys.map(key => {{
        const match = count < limit && key.every((value, i) => selection[i].includes(value));
        if (match) count++;
        return match;
    }});
    Plotly.restyle('{div_id}', {{visible: visible}});
}}

fields.forEach(id => document.getElementById(id).addEventListener('change', updatePlot));
</script>
</body>
</html>
"""


def _option_value(value) -> str:
    """String form shared by the <option> values and the trace keys."""
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def filter_options(records: Sequence[TraceRecord]) -> Dict[str, list]:
    """Distinct values of every filter field, sorted."""
    return {field: sorted({getattr(r, field) for r in records}) for field in FILTER_FIELDS}


def default_selection(records: Sequence[TraceRecord], default_fnr: Optional[float] = None) -> Dict[str, list]:
    """
    One value per filter: the fields of the first record whose FNR is the
    closest to ``default_fnr`` (the first record when no FNR is given).
    """
    if not records:
        return {field: [] for field in FILTER_FIELDS}
    first = records[0]
    if default_fnr is not None:
        first = min(records, key=lambda r: abs(r.fnr - default_fnr))
    return {field: [getattr(first, field)] for field in FILTER_FIELDS}


def select_traces(records: Sequence[TraceRecord], selection: Dict[str, list],
                  limit: int = MAX_VISIBLE_TRACES) -> List[bool]:
    """Visibility of each record: matches every filter, capped at ``limit`` traces."""
    chosen = {field: {_option_value(v) for v in values} for field, values in selection.items()}
    visible = []
    count = 0
    for r in records:
        match = count < limit and all(_option_value(getattr(r, field)) in chosen.get(field, ())
                                      for field in FILTER_FIELDS)
        count += match
        visible.append(match)
    return visible


def _filter_html(field: str, options: list, selected: list) -> str:
    chosen = {_option_value(v) for v in selected}
    items = []
    for value in options:
        key = _option_value(value)
        items.append('<option value="{0}"{1}>{2}</option>'.format(
            html.escape(key), " selected" if key in chosen else "", html.escape(key or "-")))
    return ('<div><label for="{0}"><b>{0}</b></label><br>'
            '<select id="{0}" multiple size="4" style="min-width:120px;">{1}</select></div>').format(
                field, "".join(items))


def plot_interactive(records: Sequence[TraceRecord], out_path: str, default_fnr: Optional[float] = None,
                     limit: int = MAX_VISIBLE_TRACES) -> go.Figure:
    """
    Interactive overview: one precision curve per record, filtered by a
    multi-select per record field (method, dataset, FNR, drop level, metric,
    aggregation, metric aggregation). Each filter starts on a single value
    and at most ``limit`` matching curves are drawn at a time.
    """
    selection = default_selection(records, default_fnr)
    visible = select_traces(records, selection, limit)

    fig = go.Figure()
    for r, show in zip(records, visible):
        fig.add_trace(go.Scatter(
            x=list(r.xs),
            y=list(r.ys),
            mode="lines",
            name=trace_key(r.to_dict()),
            customdata=[[th] for th in r.th],
            hovertemplate="quality >= %{x:.2f}<br>precision %{y:.3f}<br>threshold %{customdata[0]:.4f}",
            visible=show,
        ))

    fig.update_layout(
        title="Robust precision at target FNR",
        xaxis_title="Quality threshold",
        yaxis_title="Precision",
        yaxis=dict(range=[0, 1.05]),
        legend=dict(font=dict(size=8)),
    )

    options = filter_options(records)
    page = PAGE_TEMPLATE.format(
        filters="\n".join(_filter_html(field, options[field], selection[field]) for field in FILTER_FIELDS),
        plot=fig.to_html(full_html=False, include_plotlyjs="cdn", div_id=PLOT_DIV_ID),
        trace_keys=json.dumps([[_option_value(getattr(r, field)) for field in FILTER_FIELDS] for r in records]),
        fields=json.dumps(list(FILTER_FIELDS)),
        limit=limit,
        div_id=PLOT_DIV_ID,
    )

    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, 'w', encoding='utf-8') as f:
        f.write(page)
    print(f"Wrote {out_path}")
    return fig


def plot_precision_curves(records: Sequence[TraceRecord], out_dir: str, fnr: float) -> List[str]:
    """One static figure per dataset: precision vs quality threshold by method (mean over variants)."""
    df = records_to_frame(records)
    if df.empty:
        return []
    df = df[np.isclose(df["fnr"], fnr)]

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written = []

    sns.set(style="whitegrid")
    for dataset, df_dataset in df.groupby("dataset"):
        plt.figure(figsize=(8, 6))
        sns.lineplot(data=df_dataset, x="quality_threshold", y="precision", hue="method",
                     style="metric", errorbar=None)
        plt.title(f"{dataset} - precision at FNR={fnr:.2f}")
        plt.xlabel("Quality threshold")
        plt.ylabel("Precision")
        plt.ylim(0, 1.05)
        plt.legend(bbox_to_anchor=(1.05, 1), loc='upper left', fontsize=7)
        plt.tight_layout()
        path = out / f"precision_{dataset}_fnr_{fnr:.2f}.png"
        plt.savefig(path, dpi=300)
        plt.close()
        written.append(str(path))
    return written
