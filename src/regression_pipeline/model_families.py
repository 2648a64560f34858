import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from numbers import Integral, Real
from types import MappingProxyType
from typing import Any, Mapping, Optional

import numpy as np
import pandas as pd
from lightgbm import LGBMRegressor
from sklearn.dummy import DummyRegressor
from sklearn.ensemble import RandomForestRegressor
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import Lasso, LinearRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.tree import DecisionTreeRegressor

from .dataset import Dataset
from .errors import InvalidHyperparameterError, SchemaMismatchError
from .grid import Hyperparameter, HyperparameterGrid


def _feature_frame(rows: "Dataset | pd.DataFrame") -> pd.DataFrame:
    return rows.X if isinstance(rows, Dataset) else pd.DataFrame(rows)


@dataclass(frozen=True, eq=False)
class FittedModel:
    """An estimator fitted for one configuration on one training set."""
    family: str
    hyperparameters: Mapping[str, Any]
    feature_names: tuple[str, ...]
    estimator: Any

    def predict(self, rows: "Dataset | pd.DataFrame") -> np.ndarray:
        X = _feature_frame(rows)
        expected, got = set(self.feature_names), set(X.columns)
        if expected != got:
            raise SchemaMismatchError(
                f"{self.family}: predict columns differ from fit columns "
                f"(missing={sorted(expected - got)}, unexpected={sorted(got - expected)})"
            )
        return np.asarray(self.estimator.predict(X[list(self.feature_names)]), dtype=float)


def _is_int(value: Any, low: int, high: Optional[int] = None) -> bool:
    if isinstance(value, bool) or not isinstance(value, Integral):
        return False
    return value >= low and (high is None or value <= high)


def _is_real(value: Any, low: float, strict: bool = False) -> bool:
    if isinstance(value, bool) or not isinstance(value, Real) or not np.isfinite(value):
        return False
    return value > low if strict else value >= low


class ModelFamily(ABC):
    """
    One kind of regression model with a uniform fit/predict contract.

    Subclasses declare `defaults`, a domain check per hyperparameter and how
    to build the underlying estimator. `random_state` seeds every stochastic
    step, so fitting twice on the same data gives the same model.
    """

    name: str = ""
    defaults: dict[str, Any] = {}

    def __init__(self, random_state: int = 42):
        self.random_state = random_state

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(random_state={self.random_state})"

    @abstractmethod
    def hyperparameter_space(self, train: Optional[Dataset] = None) -> HyperparameterGrid:
        """Default tuning grid; `train` lets data-dependent ranges be finalized."""

    @abstractmethod
    def _valid(self, name: str, value: Any, n_features: int) -> bool:
        ...

    @abstractmethod
    def _build(self, params: dict[str, Any]) -> Any:
        ...

    def resolve(self, hyperparameters: Optional[Mapping[str, Any]], n_features: int) -> dict[str, Any]:
        """Merge with defaults and check every value against its domain."""
        hyperparameters = dict(hyperparameters or {})
        unknown = sorted(set(hyperparameters) - set(self.defaults))
        if unknown:
            raise InvalidHyperparameterError(f"{self.name}: unknown hyperparameters {unknown}")
        params = {**self.defaults, **hyperparameters}
        for key, value in params.items():
            if not self._valid(key, value, n_features):
                raise InvalidHyperparameterError(
                    f"{self.name}: invalid value {value!r} for '{key}'"
                )
        return params

    def fit(self, train_rows: Dataset, hyperparameters: Optional[Mapping[str, Any]] = None) -> FittedModel:
        X, y = train_rows.X, train_rows.y
        params = self.resolve(hyperparameters, n_features=X.shape[1])
        estimator = self._build(params)
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=ConvergenceWarning)
            warnings.filterwarnings("ignore", category=UserWarning, module="lightgbm")
            estimator.fit(X, y)
        return FittedModel(
            family=self.name,
            hyperparameters=MappingProxyType(params),
            feature_names=tuple(X.columns),
            estimator=estimator,
        )

    def predict(self, fitted_model: FittedModel, rows: "Dataset | pd.DataFrame") -> np.ndarray:
        return fitted_model.predict(rows)


class NullFamily(ModelFamily):
    """Intercept-only baseline: predicts the training target mean."""

    name = "null"
    defaults = {}

    def hyperparameter_space(self, train=None):
        return HyperparameterGrid()

    def _valid(self, name, value, n_features):
        return False

    def _build(self, params):
        return DummyRegressor(strategy="mean")


class TreeFamily(ModelFamily):
    """Single CART regression tree with cost-complexity pruning."""

    name = "tree"
    defaults = {"ccp_alpha": 0.0, "max_depth": 5}

    def hyperparameter_space(self, train=None):
        return HyperparameterGrid(params=(
            Hyperparameter.regular("ccp_alpha", 1e-10, 1e-1, levels=5, log=True, simpler="higher"),
            Hyperparameter.regular("max_depth", 1, 15, levels=5, integer=True),
        ))

    def _valid(self, name, value, n_features):
        if name == "ccp_alpha":
            return _is_real(value, 0.0)
        return value is None or _is_int(value, 1)

    def _build(self, params):
        return DecisionTreeRegressor(random_state=self.random_state, **params)


class LassoLinearFamily(ModelFamily):
    """L1-penalized linear regression on standardized predictors."""

    name = "lasso"
    defaults = {"alpha": 1.0}

    def hyperparameter_space(self, train=None):
        return HyperparameterGrid(params=(
            Hyperparameter.regular("alpha", 1e-10, 1.0, levels=20, log=True, simpler="higher"),
        ))

    def _valid(self, name, value, n_features):
        return _is_real(value, 0.0)

    def _build(self, params):
        alpha = params["alpha"]
        # zero penalty is plain least squares
        model = LinearRegression() if alpha == 0 else Lasso(alpha=alpha, max_iter=10_000)
        return Pipeline(steps=[("scaler", StandardScaler()), ("model", model)])


class RandomForestFamily(ModelFamily):
    """Bagged regression trees with random predictor subsets per split."""

    name = "random_forest"
    defaults = {"max_features": 1, "n_estimators": 500, "min_samples_leaf": 5}

    def hyperparameter_space(self, train=None):
        n_features = len(train.feature_names) if train is not None else 1
        return HyperparameterGrid(params=(
            Hyperparameter.regular("max_features", 1, max(n_features, 1), levels=3, integer=True),
            Hyperparameter.regular("n_estimators", 100, 500, levels=3, integer=True),
            Hyperparameter.regular("min_samples_leaf", 2, 40, levels=3, integer=True, simpler="higher"),
        ))

    def _valid(self, name, value, n_features):
        if name == "max_features":
            return _is_int(value, 1, max(n_features, 1))
        return _is_int(value, 1)

    def _build(self, params):
        return RandomForestRegressor(random_state=self.random_state, n_jobs=1, **params)


class GradientBoostingFamily(ModelFamily):
    """LightGBM gradient-boosted trees."""

    name = "boosting"
    defaults = {"n_estimators": 300, "learning_rate": 0.05, "num_leaves": 31}

    def hyperparameter_space(self, train=None):
        return HyperparameterGrid(params=(
            Hyperparameter.regular("n_estimators", 100, 500, levels=3, integer=True),
            Hyperparameter.regular("learning_rate", 0.01, 0.3, levels=3, log=True),
            Hyperparameter.regular("num_leaves", 8, 64, levels=3, integer=True),
        ))

    def _valid(self, name, value, n_features):
        if name == "learning_rate":
            return _is_real(value, 0.0, strict=True)
        if name == "num_leaves":
            return _is_int(value, 2)
        return _is_int(value, 1)

    def _build(self, params):
        return LGBMRegressor(
            random_state=self.random_state,
            n_jobs=1,
            verbosity=-1,
            deterministic=True,
            **params,
        )


FAMILY_REGISTRY: dict[str, type[ModelFamily]] = {
    cls.name: cls
    for cls in (NullFamily, TreeFamily, LassoLinearFamily, RandomForestFamily, GradientBoostingFamily)
}


def make_family(name: str, random_state: int = 42) -> ModelFamily:
    try:
        return FAMILY_REGISTRY[name](random_state=random_state)
    except KeyError:
        raise ValueError(f"Unknown model family '{name}'. Available: {sorted(FAMILY_REGISTRY)}") from None
