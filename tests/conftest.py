import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

# Project modules live at the repository root
sys.path.insert(0, str(Path(__file__).parent.parent))

from combinations import Combination
from run_async import TraceRecord


@pytest.fixture
def paired_samples():
    """Uncertainty scores that grow as quality drops, with some noise."""
    rng = np.random.default_rng(0)
    quality = rng.uniform(0.4, 1.0, size=300)
    scores = (1.0 - quality) + rng.normal(0.0, 0.05, size=300)
    return scores, quality


@pytest.fixture
def sample_records():
    xs = (0.6, 0.7, 0.8)
    return [
        TraceRecord("Brats_last_final", "MCd", 0.1, "dice", "", "mean", 0.02,
                    xs, (0.3, 0.2, None), (0.9, 0.95, None)),
        TraceRecord("Brats_last_final", "TTA", 0.0, "dice", "_union", "max", 0.04,
                    xs, (0.35, 0.25, 0.1), (0.85, 0.9, 1.0)),
        TraceRecord("LUNG_last_final", "MCd", 0.2, "sdice", "", "mean", 0.02,
                    xs, (0.4, None, None), (0.7, None, None)),
    ]


@pytest.fixture
def combination():
    return Combination("Brats_last_final", "MCd", 0.1, "dice", "", "mean")
