from dataclasses import dataclass
from typing import Callable

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score


def rmse(y_true, y_pred) -> float:
    """Root-mean-squared error."""
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def mae(y_true, y_pred) -> float:
    return float(mean_absolute_error(y_true, y_pred))


def rsq(y_true, y_pred) -> float:
    return float(r2_score(y_true, y_pred))


@dataclass(frozen=True)
class Metric:
    name: str
    fn: Callable[..., float]
    greater_is_better: bool = False

    def __call__(self, y_true, y_pred) -> float:
        return self.fn(np.asarray(y_true, dtype=float), np.asarray(y_pred, dtype=float))

    def better(self, a: float, b: float) -> bool:
        """True if score a is strictly better than score b."""
        return a > b if self.greater_is_better else a < b


METRICS = {
    "rmse": Metric("rmse", rmse),
    "mae": Metric("mae", mae),
    "rsq": Metric("rsq", rsq, greater_is_better=True),
}


def get_metric(metric: "str | Metric") -> Metric:
    if isinstance(metric, Metric):
        return metric
    try:
        return METRICS[metric]
    except KeyError:
        raise ValueError(f"Unknown metric '{metric}'. Available: {sorted(METRICS)}") from None
