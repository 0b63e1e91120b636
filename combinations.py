from itertools import product
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from constants import (AGGREGATIONS, DEFAULT_DROP_LEVELS, DROP_LEVELS, METRIC_AGGREGATIONS,
                       METRICS)


class Combination(NamedTuple):
    dataset: str
    method: str
    drop_level: float
    metric: str
    aggregation: str
    metric_aggregation: str


def make_xy_column_names(method: str, drop_level: float, metric: str, aggregation: str,
                         metric_aggregation: str, pref: str) -> Tuple[str, str]:
    """
    Column names of (uncertainty score, quality score) for one combination.

    The uncertainty column is the paired agreement between the sampled
    segmentations; the quality column is the metric of the mean prediction
    against the ground truth.
    """
    dl = f"{drop_level:.1f}"
    agg = aggregation
    met_agg = metric_aggregation

    if method == "MCd":
        return (f"tumor_paired{metric}MCd_{dl}_seg{agg}_{met_agg}_{pref}",
                f"tumor_{metric}_{dl}_seg{agg}_UQ_meanMC_{pref}")
    if method == "ckp-DE":
        return (f"tumor_paired{metric}DE_{dl}_seg{agg}_{met_agg}_{pref}",
                f"tumor_{metric}__UQ_meanDE_{dl}_seg{agg}_{pref}")
    if method == "DE":
        return (f"tumor_paired{metric}DE_{dl}_DE{agg}_{met_agg}_{pref}",
                f"tumor_{metric}__UQ_meanDE_{dl}_DE{agg}_{pref}")
    if method == "TTA":
        return (f"tumor_paired{metric}MCd_{dl}_flip_seg{agg}_{met_agg}_{pref}",
                f"tumor_{metric}_{dl}_flip_seg{agg}_UQ_meanMC_{pref}")
    if method == "OOD":
        return (f"tumor_{metric}_diff_2_{dl}_30",
                f"tumor_{metric}_{dl}_30")
    raise ValueError(f"Unknown method '{method}'")


def build_combinations(datasets: Sequence[str], methods: Sequence[str],
                       drop_levels: Optional[Dict[str, List[float]]] = None,
                       metrics: Sequence[str] = METRICS,
                       aggregations: Sequence[str] = AGGREGATIONS,
                       metric_aggregations: Sequence[str] = METRIC_AGGREGATIONS) -> List[Combination]:
    """All (dataset, method, drop level, metric, aggregation, metric aggregation) tuples."""
    if drop_levels is None:
        drop_levels = DROP_LEVELS

    combinations = []
    for dataset in datasets:
        for method in methods:
            levels = drop_levels.get(method, DEFAULT_DROP_LEVELS)
            # OOD scores have no segmentation aggregation
            if method == "OOD":
                aggs, met_aggs = [""], [""]
            else:
                aggs, met_aggs = aggregations, metric_aggregations

            for dl, metric, agg, met_agg in product(levels, metrics, aggs, met_aggs):
                combinations.append(Combination(dataset, method, float(dl), metric, agg, met_agg))
    return combinations


def needed_columns(combinations: Sequence[Combination], pref: str) -> List[str]:
    """Unique column names required by the combinations, in first-seen order."""
    seen = {}
    for c in combinations:
        for col in make_xy_column_names(c.method, c.drop_level, c.metric, c.aggregation,
                                        c.metric_aggregation, pref):
            seen.setdefault(col, None)
    return list(seen)
