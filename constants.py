import os

from dotenv import load_dotenv

# load environment variables from .env file
load_dotenv()

DATA_DIR = os.getenv("UQ_DATA_DIR", "..")  # folder with <dataset>_Metrics_<pref>_validation.table.json
OUTPUT_DIR = os.getenv("UQ_OUTPUT_DIR", "results")
PREF = os.getenv("UQ_PREF", "49")  # checkpoint prefix used in the column names

DATASETS = [
    "Brats_last_final",
    "LUNG_last_final",
    "ABDO1k_last_final",
    "pancreas_last_final",
]

METHODS = ["TTA", "MCd", "ckp-DE", "DE", "OOD"]

DROP_LEVELS = {
    "MCd": [0.1, 0.2, 0.3, 0.4, 0.5],
    "TTA": [0.0, 0.1, 0.2, 0.3, 0.4, 0.5],
    "OOD": [0.0, 0.1, 0.2, 0.3, 0.4, 0.5],
}
DEFAULT_DROP_LEVELS = [0.0]  # ckp-DE, DE

METRICS = ["dice", "sdice"]
AGGREGATIONS = ["", "_union", "_inter", "_consensus", "_logit"]
METRIC_AGGREGATIONS = ["mean", "max", "min", "logitmean"]

FNRS = [i / 50 for i in range(1, 5)]  # 0.02 ... 0.08
QUALITY_THRESHOLDS = [round(0.6 + 0.01 * i, 2) for i in range(39)]  # 0.60 ... 0.98
QUANTILES = [round(0.025 + 0.025 * i, 3) for i in range(40)]  # 0.025 ... 1.0

N_BOOTSTRAP = int(os.getenv("UQ_N_BOOTSTRAP", "2000"))
AGGREGATION_MODE = os.getenv("UQ_AGGREGATION", "mean")  # mean, median, min, max, percentile
PERCENTILE = 0.95  # only used by the "percentile" aggregation

SEED = int(os.getenv("UQ_SEED", "42"))
MAX_CONCURRENT = int(os.getenv("UQ_MAX_CONCURRENT", str(os.cpu_count() or 4)))
PROGRESS_EVERY = 100

# Result file names (inside OUTPUT_DIR)
OUTPUT_JSON = "precomputed.json"
OUTPUT_HTML = "robust_curves_full.html"
TRACES_DB = "traces.db"
