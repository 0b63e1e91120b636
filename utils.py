import json
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd


def load_json_table(table_path: str, columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Load a {"columns": [...], "data": [[...], ...]} metrics table.
    Only the requested columns are kept (the ones present in the file).
    """
    path = Path(table_path)
    if not path.exists():
        raise FileNotFoundError(f"Metrics table not found: {table_path}")

    with open(path, 'r', encoding='utf-8') as f:
        table = json.load(f)

    if "columns" not in table or "data" not in table:
        raise ValueError(f"Expected 'columns' and 'data' keys in {table_path}")

    df = pd.DataFrame(table["data"], columns=table["columns"])
    if columns is not None:
        df = df[[c for c in columns if c in df.columns]]
    return df.apply(pd.to_numeric, errors="coerce").astype(float)


def sigmoid(values) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.asarray(values, dtype=float)))


def trace_key(record: Dict) -> str:
    """Human readable trace name used in plot legends."""
    return (f"{record['method']} | {record['dataset']} | FNR={record['fnr']:.2f} | "
            f"drop={record['drop_level']:.1f} | {record['metric']} | "
            f"{record['aggregation'] or '-'} | {record['metric_aggregation'] or '-'}")
