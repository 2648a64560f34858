import time
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from joblib.externals.loky import get_reusable_executor

from .dataset import Dataset
from .errors import ModelSelectionError, SchemaError
from .grid import HyperparameterGrid
from .metrics import Metric, get_metric
from .model_families import ModelFamily
from .splitter import FoldAssignment
from .utils.logger import get_logger


@dataclass(frozen=True, eq=False)
class TuningResult:
    """
    Cross-validated scores of one model family over a grid.

    scores[i, j] is the metric of grid point i on unit j, where units[j] is
    a (repeat, fold) pair.
    """
    family: str
    metric: Metric
    grid: HyperparameterGrid
    points: tuple[dict[str, Any], ...]
    units: tuple[tuple[int, int], ...]
    scores: np.ndarray

    @property
    def mean(self) -> np.ndarray:
        return self.scores.mean(axis=1)

    @property
    def std_err(self) -> np.ndarray:
        n = self.scores.shape[1]
        if n < 2:
            return np.zeros(len(self.points))
        return self.scores.std(axis=1, ddof=1) / np.sqrt(n)

    def summary(self) -> pd.DataFrame:
        """One row per grid point: hyperparameters, mean, std_err, n."""
        df = pd.DataFrame(list(self.points), columns=self.grid.names, index=range(len(self.points)))
        df["metric"] = self.metric.name
        df["mean"] = self.mean
        df["std_err"] = self.std_err
        df["n"] = self.scores.shape[1]
        return df

    @property
    def best_mean(self) -> float:
        best = select_best(self)
        return float(self.mean[self.points.index(best)])


def _simplest(result: TuningResult, candidates: list[int]) -> int:
    """Simplest configuration among candidates; grid order settles exact duplicates."""
    return min(candidates, key=lambda i: (result.grid.simplicity_key(result.points[i]), i))


def select_best(result: TuningResult, rtol: float = 1e-12) -> dict[str, Any]:
    """
    Grid point with the best mean score.

    Points whose means tie within `rtol` are resolved in favour of the
    simplest configuration: every hyperparameter declares whether lower or
    higher values are simpler, compared in grid parameter order.
    """
    means = result.mean
    if np.all(np.isnan(means)):
        raise ModelSelectionError(f"{result.family}: every grid point scored NaN")
    best = np.nanmax(means) if result.metric.greater_is_better else np.nanmin(means)
    tol = rtol * max(1.0, abs(best))
    tied = [i for i, m in enumerate(means) if abs(m - best) <= tol]
    return dict(result.points[_simplest(result, tied)])


def select_by_one_std_err(result: TuningResult) -> dict[str, Any]:
    """Simplest grid point whose mean is within one standard error of the best."""
    best_idx = result.points.index(select_best(result))
    means = result.mean
    bound = means[best_idx] + (-1 if result.metric.greater_is_better else 1) * result.std_err[best_idx]
    if result.metric.greater_is_better:
        within = [i for i, m in enumerate(means) if m >= bound]
    else:
        within = [i for i, m in enumerate(means) if m <= bound]
    return dict(result.points[_simplest(result, within)])


SELECTION_RULES = {"min": select_best, "one_std_err": select_by_one_std_err}


def _evaluate_unit(
    family: ModelFamily,
    train_set: Dataset,
    folds: FoldAssignment,
    point: dict[str, Any],
    repeat: int,
    fold: int,
    metric: Metric,
) -> float:
    """Fit on every fold but one, score on the held-out fold."""
    analysis, assessment = folds.fold_indices(repeat, fold)
    try:
        fitted = family.fit(train_set.take(analysis), point)
        predicted = fitted.predict(train_set.take(assessment))
    except ModelSelectionError as exc:
        raise exc.add_context(family=family.name, grid_point=point, repeat=repeat, fold=fold)
    return metric(train_set.y[assessment], predicted)


class Tuner:
    """Grid search over one model family with repeated k-fold cross-validation."""

    def __init__(
        self,
        metric: "str | Metric" = "rmse",
        n_jobs: int = 1,
        backend: str = "loky",
        verbose: bool = True,
    ):
        """
        n_jobs:
            Worker count for the (grid point x repeat x fold) evaluations.
            1 runs sequentially; -1 uses every core.
        backend:
            joblib backend ("loky" processes or "threading").
        """
        self.metric = get_metric(metric)
        self.n_jobs = n_jobs
        self.backend = backend
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)

    def _shutdown_workers(self) -> None:
        # loky keeps its worker processes alive for reuse after Parallel exits
        if self.n_jobs != 1 and self.backend == "loky":
            get_reusable_executor().shutdown(wait=True)

    def _check_grid(self, family: ModelFamily, points: list[dict[str, Any]], n_features: int) -> None:
        # validate every point before any fitting work is scheduled
        for point in points:
            try:
                family.resolve(point, n_features)
            except ModelSelectionError as exc:
                raise exc.add_context(family=family.name, grid_point=point)

    def tune(
        self,
        family: ModelFamily,
        train_set: Dataset,
        fold_assignment: FoldAssignment,
        grid: Optional[HyperparameterGrid] = None,
        metric: "str | Metric | None" = None,
    ) -> TuningResult:
        """
        Score every grid point on every (repeat, fold) of `fold_assignment`.

        Any error aborts the whole family; a partially filled result is
        never returned.
        """
        metric = get_metric(metric) if metric is not None else self.metric
        if fold_assignment.n_rows != len(train_set):
            raise SchemaError(
                f"Fold assignment covers {fold_assignment.n_rows} rows, "
                f"training set has {len(train_set)}"
            )

        grid = grid if grid is not None else family.hyperparameter_space(train_set)
        points = grid.points()
        units = list(fold_assignment.units())
        self._check_grid(family, points, n_features=len(train_set.feature_names))

        if self.verbose:
            self.logger.info(
                f"Tuning '{family.name}': {len(points)} grid points x {len(units)} resamples "
                f"(n_jobs={self.n_jobs})"
            )
        start = time.perf_counter()

        try:
            with Parallel(n_jobs=self.n_jobs, backend=self.backend) as parallel:
                flat = parallel(
                    delayed(_evaluate_unit)(family, train_set, fold_assignment, point, repeat, fold, metric)
                    for point in points
                    for repeat, fold in units
                )
        finally:
            self._shutdown_workers()

        result = TuningResult(
            family=family.name,
            metric=metric,
            grid=grid,
            points=tuple(points),
            units=tuple(units),
            scores=np.asarray(flat, dtype=float).reshape(len(points), len(units)),
        )

        if self.verbose:
            best = select_best(result)
            self.logger.info(
                f"Finished '{family.name}' in {time.perf_counter() - start:.1f}s; "
                f"best {metric.name}={result.best_mean:.4f} at {best}"
            )
        return result
