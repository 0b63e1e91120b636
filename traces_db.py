"""
SQLite cache of computed traces, queryable by the plotting code and the API.
Curves are stored as JSON arrays (null for missing points).
"""
import json
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from run_async import TraceRecord

TRACE_TABLE = "trace_data"

FILTER_COLUMNS = ("method", "dataset", "metric", "aggregation", "metric_aggregation", "drop_level", "fnr")

# floats are matched with a tolerance, the stored values come from Python arithmetic
FLOAT_TOLERANCE = 1e-9


def save_traces(records: Sequence[TraceRecord], db_path: str) -> None:
    """Replace the trace table with the given records, in a single transaction."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    rows = [
        (r.method, r.dataset, r.drop_level, r.fnr, r.metric, r.aggregation, r.metric_aggregation,
         json.dumps(list(r.xs)), json.dumps(list(r.th)), json.dumps(list(r.ys)))
        for r in records
    ]
    with closing(sqlite3.connect(db_path, isolation_level=None)) as conn:
        conn.execute("BEGIN")
        try:
            conn.execute(f"DROP TABLE IF EXISTS {TRACE_TABLE}")
            conn.execute(f"""
                CREATE TABLE {TRACE_TABLE} (
                    method TEXT, dataset TEXT, drop_level REAL, fnr REAL,
                    metric TEXT, aggregation TEXT, metric_aggregation TEXT,
                    xs TEXT, th TEXT, ys TEXT
                )
            """)
            conn.execute(f"CREATE INDEX idx_trace_lookup ON {TRACE_TABLE} (dataset, method, fnr)")
            conn.executemany(
                f"""INSERT INTO {TRACE_TABLE}
                    (method, dataset, drop_level, fnr, metric, aggregation, metric_aggregation, xs, th, ys)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
        except Exception:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    print(f"Saved {len(records)} traces to {db_path}")


def load_traces(db_path: str, method: Optional[str] = None, dataset: Optional[str] = None,
                metric: Optional[str] = None, aggregation: Optional[str] = None,
                metric_aggregation: Optional[str] = None, drop_level: Optional[float] = None,
                fnr: Optional[float] = None) -> List[TraceRecord]:
    """Load traces, keeping only the ones matching every given filter."""
    if not Path(db_path).exists():
        raise FileNotFoundError(f"Trace database not found: {db_path}")

    query = (f"SELECT method, dataset, drop_level, fnr, metric, aggregation, metric_aggregation, xs, th, ys "
             f"FROM {TRACE_TABLE} WHERE 1=1")
    params: List = []
    for column, value in (("method", method), ("dataset", dataset), ("metric", metric),
                          ("aggregation", aggregation), ("metric_aggregation", metric_aggregation)):
        if value is not None:
            query += f" AND {column} = ?"
            params.append(value)
    for column, value in (("drop_level", drop_level), ("fnr", fnr)):
        if value is not None:
            query += f" AND ABS({column} - ?) < {FLOAT_TOLERANCE}"
            params.append(float(value))
    query += " ORDER BY dataset, method, drop_level, metric, aggregation, metric_aggregation, fnr"

    with closing(sqlite3.connect(db_path)) as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(query, params).fetchall()

    return [
        TraceRecord.from_dict({
            "method": row["method"],
            "dataset": row["dataset"],
            "drop_level": row["drop_level"],
            "fnr": row["fnr"],
            "metric": row["metric"],
            "aggregation": row["aggregation"],
            "metric_aggregation": row["metric_aggregation"],
            "xs": json.loads(row["xs"]),
            "th": json.loads(row["th"]),
            "ys": json.loads(row["ys"]),
        })
        for row in rows
    ]


def load_metadata(db_path: str) -> Dict[str, list]:
    """Distinct values of every categorical column (dropdown content)."""
    if not Path(db_path).exists():
        raise FileNotFoundError(f"Trace database not found: {db_path}")

    metadata = {}
    with closing(sqlite3.connect(db_path)) as conn:
        for column in FILTER_COLUMNS:
            rows = conn.execute(f"SELECT DISTINCT {column} FROM {TRACE_TABLE} ORDER BY {column}").fetchall()
            metadata[column] = [row[0] for row in rows]
    return metadata
