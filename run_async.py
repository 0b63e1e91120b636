import asyncio
import aiofiles

import json
import zlib
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from combinations import Combination
from constants import (AGGREGATION_MODE, MAX_CONCURRENT, N_BOOTSTRAP, PERCENTILE, PROGRESS_EVERY,
                       QUALITY_THRESHOLDS, QUANTILES, SEED)
from robust_precision import compute_robust_precision, validate_inputs

ColumnProvider = Callable[[Combination], Optional[Tuple[Sequence[float], Sequence[float]]]]


@dataclass(frozen=True)
class TraceRecord:
    """Result of one (combination, target FNR) unit."""
    dataset: str
    method: str
    drop_level: float
    metric: str
    aggregation: str
    metric_aggregation: str
    fnr: float
    xs: Tuple[float, ...]  # quality cutoffs
    th: Tuple[Optional[float], ...]  # calibrated uncertainty thresholds
    ys: Tuple[Optional[float], ...]  # precisions

    def __post_init__(self):
        if not len(self.xs) == len(self.th) == len(self.ys):
            raise ValueError(f"Curve lengths differ: {len(self.xs)}, {len(self.th)}, {len(self.ys)}")

    def sort_key(self):
        return (self.dataset, self.method, self.drop_level, self.metric, self.aggregation,
                self.metric_aggregation, self.fnr)

    def to_dict(self) -> Dict:
        d = asdict(self)
        for k in ("xs", "th", "ys"):
            d[k] = list(d[k])
        return d

    @classmethod
    def from_dict(cls, d: Dict) -> "TraceRecord":
        return cls(
            dataset=d["dataset"],
            method=d["method"],
            drop_level=float(d["drop_level"]),
            metric=d["metric"],
            aggregation=d["aggregation"],
            metric_aggregation=d["metric_aggregation"],
            fnr=float(d["fnr"]),
            xs=tuple(float(v) for v in d["xs"]),
            th=tuple(None if v is None else float(v) for v in d["th"]),
            ys=tuple(None if v is None else float(v) for v in d["ys"]),
        )


def unit_key(combination: Combination, fnr: float) -> str:
    return "|".join([combination.dataset, combination.method, f"{combination.drop_level:.3f}",
                     combination.metric, combination.aggregation, combination.metric_aggregation,
                     f"{fnr:.6f}"])


def unit_rng(seed: int, combination: Combination, fnr: float) -> np.random.Generator:
    """Independent generator for a unit, derived from the base seed and the unit identity."""
    return np.random.default_rng([seed, zlib.crc32(unit_key(combination, fnr).encode("utf-8"))])


def run_unit(combination: Combination, fnr: float, scores, qualities,
             quality_thresholds: Sequence[float], quantile_grid: Sequence[float],
             bootstrap_count: int, aggregation_mode: str, seed: int,
             percentile: float = PERCENTILE) -> TraceRecord:
    thresholds, precisions = compute_robust_precision(
        scores, qualities, quality_thresholds, quantile_grid, bootstrap_count,
        aggregation_mode=aggregation_mode, target_fnr=fnr,
        rng=unit_rng(seed, combination, fnr), percentile=percentile)

    # degenerate curves usually point at a wrong column pair
    label = f"dataset={combination.dataset} method={combination.method} fnr={fnr} dl={combination.drop_level} " \
            f"metric={combination.metric} agg={combination.aggregation} met_agg={combination.metric_aggregation}"
    if all(p is not None and p == 1.0 for p in precisions):
        print(f"Warning: precision curve is all 1.0 for {label}")
    if all(t is None for t in thresholds):
        print(f"Warning: threshold curve is empty for {label}")

    return TraceRecord(
        dataset=combination.dataset,
        method=combination.method,
        drop_level=combination.drop_level,
        metric=combination.metric,
        aggregation=combination.aggregation,
        metric_aggregation=combination.metric_aggregation,
        fnr=float(fnr),
        xs=tuple(float(q) for q in quality_thresholds),
        th=tuple(thresholds),
        ys=tuple(precisions),
    )


async def run_fan_out(combinations: Sequence[Combination], fnrs: Sequence[float],
                      column_provider: ColumnProvider,
                      quality_thresholds: Sequence[float] = QUALITY_THRESHOLDS,
                      quantile_grid: Sequence[float] = QUANTILES,
                      bootstrap_count: int = N_BOOTSTRAP,
                      aggregation_mode: str = AGGREGATION_MODE,
                      seed: int = SEED,
                      max_concurrent: int = MAX_CONCURRENT,
                      percentile: float = PERCENTILE) -> List[TraceRecord]:
    """
    Apply the robust estimator to every (combination, FNR) unit on worker threads.
    Combinations without data are skipped; any other failure aborts the run.
    The returned records are sorted, whatever order the units finished in.
    """
    # configuration errors must surface before any unit runs
    for fnr in fnrs:
        validate_inputs([], [], quality_thresholds, quantile_grid, bootstrap_count,
                        aggregation_mode, fnr, percentile)
    if max_concurrent <= 0:
        raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")

    semaphore = asyncio.Semaphore(max_concurrent)
    completed_count = 0
    total_expected = 0

    async def process_single_unit(combination, fnr, scores, qualities):
        nonlocal completed_count
        async with semaphore:
            record = await asyncio.to_thread(
                run_unit, combination, fnr, scores, qualities, quality_thresholds, quantile_grid,
                bootstrap_count, aggregation_mode, seed, percentile)

        completed_count += 1
        if completed_count % PROGRESS_EVERY == 0:
            print(f"Progress: {completed_count}/{total_expected} completed "
                  f"({completed_count / total_expected * 100:.1f}%)")
        return record

    tasks = []
    skipped = 0
    for combination in combinations:
        columns = column_provider(combination)
        if columns is None:
            skipped += 1
            continue
        scores, qualities = columns
        for fnr in fnrs:
            tasks.append(process_single_unit(combination, fnr, scores, qualities))

    total_expected = len(tasks)
    print(f"Total units to process: {total_expected} ({skipped} combinations without data skipped)")

    # no return_exceptions: the first failing unit fails the whole run
    results = await asyncio.gather(*tasks)
    return sorted(results, key=TraceRecord.sort_key)


def run_fan_out_sync(*args, **kwargs) -> List[TraceRecord]:
    return asyncio.run(run_fan_out(*args, **kwargs))


async def save_results_json(records: Sequence[TraceRecord], output_json: str) -> None:
    async with aiofiles.open(output_json, 'w', encoding='utf-8') as f:
        await f.write(json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False))
    print(f"Saved {len(records)} records to: {output_json}")


def load_results_json(path: str) -> List[TraceRecord]:
    with open(path, 'r', encoding='utf-8') as f:
        return [TraceRecord.from_dict(d) for d in json.load(f)]
