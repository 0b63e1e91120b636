"""
Column provider: per-dataset metric tables, reduced to the columns the
combinations need and cached in a SQLite file next to the JSON table.

The cache also remembers which columns were requested when it was built, so
columns the table simply does not have do not force a reload of the JSON.
"""
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np
import pandas as pd

from combinations import Combination, make_xy_column_names, needed_columns
from constants import DATA_DIR, PREF
from utils import load_json_table, sigmoid

CACHE_TABLE = "metrics"
REQUESTED_TABLE = "requested_columns"


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def cached_columns(sqlite_path: Path) -> List[str]:
    with closing(sqlite3.connect(sqlite_path)) as conn:
        rows = conn.execute(f"PRAGMA table_info({CACHE_TABLE})").fetchall()
    return [row[1] for row in rows]


def requested_columns(sqlite_path: Path) -> Set[str]:
    """Columns asked for when the cache was built (present in the table or not)."""
    with closing(sqlite3.connect(sqlite_path)) as conn:
        exists = conn.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                              (REQUESTED_TABLE,)).fetchone()
        if exists is None:
            return set()
        rows = conn.execute(f"SELECT name FROM {REQUESTED_TABLE}").fetchall()
    return {row[0] for row in rows}


def read_cache(sqlite_path: Path, columns: Sequence[str]) -> pd.DataFrame:
    available = set(cached_columns(sqlite_path))
    columns = [c for c in columns if c in available]
    if not columns:
        return pd.DataFrame()
    query = f"SELECT {', '.join(_quote(c) for c in columns)} FROM {CACHE_TABLE}"
    with closing(sqlite3.connect(sqlite_path)) as conn:
        df = pd.read_sql_query(query, conn)
    return df.astype(float)


def write_cache(sqlite_path: Path, df: pd.DataFrame, requested: Sequence[str]) -> None:
    with closing(sqlite3.connect(sqlite_path)) as conn, conn:
        if len(df.columns) > 0:
            df.to_sql(CACHE_TABLE, conn, if_exists="replace", index=False)
        else:
            # sqlite has no zero-column tables
            conn.execute(f"DROP TABLE IF EXISTS {CACHE_TABLE}")
        conn.execute(f"DROP TABLE IF EXISTS {REQUESTED_TABLE}")
        conn.execute(f"CREATE TABLE {REQUESTED_TABLE} (name TEXT PRIMARY KEY)")
        conn.executemany(f"INSERT INTO {REQUESTED_TABLE} (name) VALUES (?)", [(c,) for c in requested])


class ColumnStore:
    """Holds the loaded metric columns of every dataset (read-only once loaded)."""

    def __init__(self, data_dir: str = DATA_DIR, pref: str = PREF):
        self.data_dir = Path(data_dir)
        self.pref = pref
        self._tables: Dict[str, pd.DataFrame] = {}

    def table_path(self, dataset: str) -> Path:
        return self.data_dir / f"{dataset}_Metrics_{self.pref}_validation.table.json"

    def cache_path(self, dataset: str) -> Path:
        return self.data_dir / f"{dataset}_table.db"

    def load(self, dataset: str, combinations: Sequence[Combination]) -> pd.DataFrame:
        """
        Load the needed columns of a dataset. The SQLite cache is used when
        every needed column was already requested when it was built; columns
        the table does not have stay missing without touching the JSON again.
        """
        columns = needed_columns([c for c in combinations if c.dataset == dataset], self.pref)
        cache = self.cache_path(dataset)

        df = None
        if cache.exists():
            unknown = set(columns) - requested_columns(cache)
            if unknown and self.table_path(dataset).exists():
                print(f"Cache {cache} was built without {len(unknown)} needed columns, "
                      f"reloading {self.table_path(dataset)}")
            else:
                df = read_cache(cache, columns)
                print(f"Loaded cached data from {cache}")

        if df is None:
            df = load_json_table(str(self.table_path(dataset)), columns)
            for col in df.columns:
                if "logitmean" in col.lower():
                    df[col] = sigmoid(df[col].to_numpy())
            write_cache(cache, df, columns)
            print(f"Loaded {len(df)} rows from {self.table_path(dataset)} (cached to {cache})")

        missing = [c for c in columns if c not in df.columns]
        if missing:
            print(f"Warning: {len(missing)} needed columns not found for {dataset}, "
                  f"e.g. {missing[:3]}")

        self._tables[dataset] = df
        return df

    def load_all(self, datasets: Sequence[str], combinations: Sequence[Combination]) -> None:
        for dataset in datasets:
            self.load(dataset, combinations)

    def get_columns(self, combination: Combination) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """(uncertainty scores, quality scores) or None if the combination has no data."""
        df = self._tables.get(combination.dataset)
        if df is None:
            return None
        x_col, y_col = make_xy_column_names(combination.method, combination.drop_level, combination.metric,
                                            combination.aggregation, combination.metric_aggregation, self.pref)
        if x_col not in df.columns or y_col not in df.columns:
            return None
        return df[x_col].to_numpy(dtype=float), df[y_col].to_numpy(dtype=float)
