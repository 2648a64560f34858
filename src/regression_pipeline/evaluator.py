import json
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .dataset import Dataset
from .hyper_tuner import TuningResult, select_best
from .metrics import METRICS, Metric, get_metric
from .model_families import FittedModel, ModelFamily
from .utils.logger import get_logger


@dataclass(frozen=True, eq=False)
class EvaluationResult:
    """Holdout evaluation of one refitted configuration, plus the training refit."""
    family: str
    hyperparameters: Dict[str, Any]
    fitted_model: FittedModel
    metric: Metric
    metric_value: float
    actual: np.ndarray
    predictions: np.ndarray
    residuals: np.ndarray
    train_metric_value: float
    train_actual: np.ndarray
    train_predictions: np.ndarray
    train_residuals: np.ndarray

    def predictions_frame(self, subset: str = "test") -> pd.DataFrame:
        if subset == "test":
            actual, predicted, residual = self.actual, self.predictions, self.residuals
        elif subset == "train":
            actual, predicted, residual = self.train_actual, self.train_predictions, self.train_residuals
        else:
            raise ValueError(f"subset must be 'train' or 'test', got {subset!r}")
        return pd.DataFrame({"actual": actual, "predicted": predicted, "residual": residual})

    def metrics(self) -> Dict[str, float]:
        """Every registered metric on the holdout and on the training refit."""
        out: Dict[str, float] = {}
        for name, metric in METRICS.items():
            out[f"test_{name}"] = metric(self.actual, self.predictions)
            out[f"train_{name}"] = metric(self.train_actual, self.train_predictions)
        return out


@dataclass(frozen=True)
class Promotion:
    """The family chosen for final evaluation and how it compares to the baseline."""
    family: str
    hyperparameters: Dict[str, Any]
    mean: float
    baseline: Optional[str]
    baseline_mean: float
    beats_baseline: bool


def promote(
    tuning_results: Mapping[str, TuningResult],
    baseline: Optional[str] = "null",
    rule: Callable[[TuningResult], Dict[str, Any]] = select_best,
) -> Promotion:
    """
    Pick the family with the best tuning-phase mean.

    Families are ranked on the mean of their best grid point; `rule` then
    chooses the configuration to promote within the winning family, and
    `Promotion.mean` is the tuning mean of that configuration.

    That mean is compared explicitly with the baseline family's best mean;
    a promoted configuration that does not strictly beat it is flagged with
    beats_baseline=False and logged as a warning.
    """
    if not tuning_results:
        raise ValueError("No tuning results to promote from")
    if baseline is not None and baseline not in tuning_results:
        raise ValueError(f"Baseline family '{baseline}' was not tuned")

    logger = get_logger("promote")
    best_name: Optional[str] = None
    for name, result in tuning_results.items():
        if best_name is None or result.metric.better(result.best_mean, tuning_results[best_name].best_mean):
            best_name = name

    chosen = tuning_results[best_name]
    hyperparameters = rule(chosen)
    chosen_mean = float(chosen.mean[chosen.points.index(hyperparameters)])
    if baseline is None:
        baseline_mean, beats = float("nan"), True
    else:
        baseline_mean = tuning_results[baseline].best_mean
        beats = best_name != baseline and chosen.metric.better(chosen_mean, baseline_mean)

    promotion = Promotion(
        family=best_name,
        hyperparameters=hyperparameters,
        mean=chosen_mean,
        baseline=baseline,
        baseline_mean=baseline_mean,
        beats_baseline=beats,
    )
    if beats:
        logger.info(
            f"Promoted '{best_name}' ({chosen.metric.name}={chosen_mean:.4f}, "
            f"baseline {baseline}={baseline_mean:.4f})"
        )
    else:
        logger.warning(
            f"Promoted '{best_name}' does not beat baseline '{baseline}' "
            f"({chosen.metric.name} {chosen_mean:.4f} vs {baseline_mean:.4f})"
        )
    return promotion


class Evaluator:
    """Refit a chosen configuration on all training rows and score it on the holdout."""

    def __init__(self, metric: "str | Metric" = "rmse", output_dir: Optional[str] = None, verbose: bool = True):
        self.metric = get_metric(metric)
        self.output_dir = output_dir
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)

    def evaluate(
        self,
        family: ModelFamily,
        best_hyperparameters: Mapping[str, Any],
        train_set: Dataset,
        test_set: Dataset,
        metric: "str | Metric | None" = None,
    ) -> EvaluationResult:
        """Single refit on the whole training set; the only step that reads test_set."""
        metric = get_metric(metric) if metric is not None else self.metric

        fitted = family.fit(train_set, best_hyperparameters)
        train_pred = fitted.predict(train_set)
        test_pred = fitted.predict(test_set)

        y_train, y_test = train_set.y, test_set.y
        result = EvaluationResult(
            family=family.name,
            hyperparameters=dict(fitted.hyperparameters),
            fitted_model=fitted,
            metric=metric,
            metric_value=metric(y_test, test_pred),
            actual=y_test,
            predictions=test_pred,
            residuals=y_test - test_pred,
            train_metric_value=metric(y_train, train_pred),
            train_actual=y_train,
            train_predictions=train_pred,
            train_residuals=y_train - train_pred,
        )

        if self.verbose:
            self.logger.info(
                f"{family.name}: holdout {metric.name}={result.metric_value:.4f} "
                f"(train refit {result.train_metric_value:.4f}, {len(test_set)} test rows)"
            )
        return result

    def save_metrics(
        self, result: EvaluationResult, path: str, extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload = {
            "family": result.family,
            "hyperparameters": result.hyperparameters,
            "metric": result.metric.name,
            "metric_value": result.metric_value,
            **result.metrics(),
            **(extra or {}),
        }
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w") as f:
            json.dump(payload, f, indent=4, default=str)
        if self.verbose:
            self.logger.info(f"Saved metrics: {path}")
        return payload

    def plot_diagnostics(self, result: EvaluationResult, filename: str = "diagnostics.png") -> str:
        """Predicted vs actual and residuals vs predicted for the holdout. Returns saved path."""
        if self.output_dir is None:
            raise ValueError("output_dir is required to save diagnostics")
        df = result.predictions_frame("test")

        fig, axes = plt.subplots(1, 3, figsize=(15, 4.5))

        sns.scatterplot(data=df, x="actual", y="predicted", ax=axes[0], alpha=0.7)
        lo = float(np.min([df["actual"].min(), df["predicted"].min()]))
        hi = float(np.max([df["actual"].max(), df["predicted"].max()]))
        axes[0].plot([lo, hi], [lo, hi], linestyle="--", color="grey")
        axes[0].set_title("Predicted vs Actual")

        sns.scatterplot(data=df, x="predicted", y="residual", ax=axes[1], alpha=0.7)
        axes[1].axhline(0.0, linestyle="--", color="grey")
        axes[1].set_title("Residuals vs Predicted")

        sns.histplot(data=df, x="residual", kde=True, ax=axes[2])
        axes[2].set_title("Residual Distribution")

        fig.suptitle(f"{result.family}: holdout {result.metric.name}={result.metric_value:.4f}")

        os.makedirs(self.output_dir, exist_ok=True)
        path = os.path.join(self.output_dir, filename)
        fig.tight_layout()
        fig.savefig(path, dpi=200)
        plt.close(fig)

        if self.verbose:
            self.logger.info(f"Saved diagnostics plot: {path}")
        return path
