"""
Regression Model Selection — Cross-validated tuning pipeline

This package takes a tabular regression dataset through cleaning,
stratified train/test splitting, repeated k-fold grid tuning of several
model families, promotion against an intercept-only baseline and a single
holdout evaluation with residual diagnostics.

Modules:
    config              — Load YAML configuration safely.
    data_loader         — Read and optionally sample CSV data.
    dataset             — Typed table with a numeric target.
    preprocessor        — Select columns, drop incomplete rows, encode.
    splitter            — Stratified split and repeated k-fold assignment.
    grid                — Hyperparameter candidates and grids.
    model_families      — Null, tree, LASSO, random forest, boosting.
    metrics             — RMSE and companion regression metrics.
    hyper_tuner         — Grid search over folds, best-point selection.
    evaluator           — Holdout refit, residuals, baseline promotion.
    tuning_analyzer     — Tuning summary tables and plots.
    pipeline            — Orchestrates all components.
    utils.logger        — Unified timestamped console logger.
"""

from .config import Config
from .data_loader import DataLoader
from .dataset import ColumnKind, Dataset
from .errors import (
    InsufficientDataError,
    InvalidFoldCountError,
    InvalidHyperparameterError,
    ModelSelectionError,
    SchemaError,
    SchemaMismatchError,
)
from .preprocessor import ColumnPolicy, Preprocessor
from .splitter import FoldAssignment, Split, Splitter
from .grid import Hyperparameter, HyperparameterGrid
from .model_families import FAMILY_REGISTRY, FittedModel, ModelFamily, make_family
from .metrics import get_metric, rmse
from .hyper_tuner import Tuner, TuningResult, select_best, select_by_one_std_err
from .evaluator import EvaluationResult, Evaluator, Promotion, promote
from .tuning_analyzer import TuningAnalyzer
from .pipeline import PipelineRunner

__all__ = [
    "Config",
    "DataLoader",
    "ColumnKind",
    "Dataset",
    "ModelSelectionError",
    "SchemaError",
    "SchemaMismatchError",
    "InsufficientDataError",
    "InvalidFoldCountError",
    "InvalidHyperparameterError",
    "ColumnPolicy",
    "Preprocessor",
    "FoldAssignment",
    "Split",
    "Splitter",
    "Hyperparameter",
    "HyperparameterGrid",
    "FAMILY_REGISTRY",
    "FittedModel",
    "ModelFamily",
    "make_family",
    "get_metric",
    "rmse",
    "Tuner",
    "TuningResult",
    "select_best",
    "select_by_one_std_err",
    "EvaluationResult",
    "Evaluator",
    "Promotion",
    "promote",
    "TuningAnalyzer",
    "PipelineRunner",
]
