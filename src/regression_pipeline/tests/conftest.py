import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from regression_pipeline.dataset import Dataset


def make_linear_frame(n: int = 100, seed: int = 42) -> pd.DataFrame:
    """y = 2x + noise with one genuinely predictive column."""
    rng = np.random.RandomState(seed)
    x = rng.uniform(0, 10, size=n)
    return pd.DataFrame({"x": x, "y": 2 * x + rng.normal(0, 1, size=n)})


@pytest.fixture
def linear_frame():
    return make_linear_frame()


@pytest.fixture
def linear_dataset(linear_frame):
    return Dataset.from_frame(linear_frame, target="y")


@pytest.fixture
def wide_dataset():
    rng = np.random.RandomState(7)
    n = 80
    df = pd.DataFrame({
        "a": rng.normal(size=n),
        "b": rng.normal(size=n),
        "c": rng.normal(size=n),
    })
    df["y"] = 3 * df["a"] - df["b"] + rng.normal(0, 0.5, size=n)
    return Dataset.from_frame(df, target="y")
