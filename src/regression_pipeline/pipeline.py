import os
import warnings
from dataclasses import dataclass
from textwrap import indent
from typing import Dict, Optional

import numpy as np

from .config import Config
from .data_loader import DataLoader
from .dataset import Dataset
from .errors import ModelSelectionError, SchemaError
from .evaluator import EvaluationResult, Evaluator, Promotion, promote
from .grid import HyperparameterGrid
from .hyper_tuner import SELECTION_RULES, Tuner, TuningResult
from .model_families import ModelFamily, make_family
from .preprocessor import ColumnPolicy, Preprocessor
from .splitter import Splitter
from .tuning_analyzer import TuningAnalyzer
from .utils.logger import get_logger

DEFAULT_FAMILIES = ["null", "tree", "lasso", "random_forest"]


@dataclass(frozen=True, eq=False)
class PipelineReport:
    tuning: Dict[str, TuningResult]
    promotion: Promotion
    evaluation: EvaluationResult


class PipelineRunner:
    """End-to-end cross-validated model selection for one regression dataset.

    Steps:
      1. Load (and optionally sample) the CSV
      2. Select columns, drop incomplete rows, encode nominal/ordinal features
      3. Stratified train/test split on the target
      4. Repeated stratified k-fold assignment of the training rows
      5. Grid-tune every configured model family on the folds only
      6. Promote the best family, compared explicitly against the null baseline
      7. Refit it on the full training set and evaluate once on the test set
      8. Save tuning summaries, predictions, metrics and diagnostic plots"""

    def __init__(self, config: "str | Config"):
        self.config = Config.from_yaml(config) if isinstance(config, str) else config
        self.logger = get_logger(self.__class__.__name__)
        warnings.filterwarnings(
            "ignore",
            message="X does not have valid feature names",
            category=UserWarning,
            module="sklearn",
        )

    def _load(self) -> Dataset:
        cfg = self.config
        df = DataLoader(
            cfg.data["path"],
            cfg.data.get("sample_size"),
            random_state=cfg.validation.get("random_state", 42),
        ).load()
        return Dataset.from_frame(df, target=cfg.data["target_col"])

    def _strata(self, raw: Dataset, preprocessor: Preprocessor) -> Optional[np.ndarray]:
        """Raw values of `data.stratify_col` for the rows that survived preprocessing."""
        column = self.config.data.get("stratify_col")
        if column is None:
            return None
        if column not in raw.columns:
            raise SchemaError(f"Stratification column '{column}' not found")
        # read before encoding, so nominal columns stratify by category
        return raw.frame[column].to_numpy()[preprocessor.kept_rows_]

    def _grid(self, family: ModelFamily, train_set: Dataset) -> HyperparameterGrid:
        cfg = self.config.model
        grid = family.hyperparameter_space(train_set)
        overrides = (cfg.get("grids") or {}).get(family.name)
        if overrides:
            grid = grid.with_values(**overrides)
        grid_size = cfg.get("grid_size")
        if grid_size:
            grid = grid.sample(int(grid_size), seed=cfg.get("random_state", 42))
        return grid

    def run(self) -> PipelineReport:
        cfg = self.config
        val = cfg.validation
        seed = val.get("random_state", 42)
        output_dir = cfg.output.get("dir", "artifacts")
        self.logger.info("Starting model selection pipeline")

        raw = self._load()
        preprocessor = Preprocessor(ColumnPolicy.from_dict(cfg.preprocessing), verbose=True)
        dataset = preprocessor.transform(raw)
        strata = self._strata(raw, preprocessor)

        splitter = Splitter(n_bins=val.get("n_bins", 4))
        split = splitter.split_indices(
            dataset, train_fraction=val.get("train_fraction", 0.7), seed=seed, strata=strata
        )
        train_set, test_set = dataset.take(split.train), dataset.take(split.test)
        folds = splitter.make_folds(
            train_set,
            k=val.get("n_splits", 5),
            repeats=val.get("n_repeats", 1),
            seed=seed,
            strata=None if strata is None else strata[split.train],
        )

        metric = cfg.model.get("metric", "rmse")
        tuner = Tuner(metric=metric, n_jobs=val.get("n_jobs", 1), backend=val.get("backend", "loky"))
        analyzer = TuningAnalyzer(output_dir)

        families: Dict[str, ModelFamily] = {
            name: make_family(name, random_state=cfg.model.get("random_state", 42))
            for name in cfg.model.get("families", DEFAULT_FAMILIES)
        }
        tuning: Dict[str, TuningResult] = {}
        for name, family in families.items():
            try:
                tuning[name] = tuner.tune(family, train_set, folds, grid=self._grid(family, train_set))
            except ModelSelectionError as exc:
                self.logger.error(f"Tuning aborted for '{name}': {exc}")
                raise
            analyzer.run(tuning[name])

        rule_name = val.get("selection_rule", "min")
        if rule_name not in SELECTION_RULES:
            raise ValueError(f"Unknown selection_rule '{rule_name}'. Available: {sorted(SELECTION_RULES)}")
        baseline: Optional[str] = cfg.model.get("baseline", "null")
        if baseline not in tuning:
            self.logger.warning(f"Baseline family '{baseline}' not tuned; promotion is unchecked")
            baseline = None
        promotion = promote(tuning, baseline=baseline, rule=SELECTION_RULES[rule_name])

        evaluator = Evaluator(metric=metric, output_dir=output_dir)
        evaluation = evaluator.evaluate(
            families[promotion.family], promotion.hyperparameters, train_set, test_set
        )
        self._save(evaluator, evaluation, promotion, output_dir)

        metrics_str = indent(
            "\n".join(f"{k}: {v:.4f}" for k, v in evaluation.metrics().items()), " " * 4
        )
        self.logger.info(f"Final '{promotion.family}' metrics:\n{metrics_str}")
        self.logger.info("Pipeline finished")
        return PipelineReport(tuning=tuning, promotion=promotion, evaluation=evaluation)

    def _save(
        self,
        evaluator: Evaluator,
        evaluation: EvaluationResult,
        promotion: Promotion,
        output_dir: str,
    ) -> None:
        os.makedirs(output_dir, exist_ok=True)
        for subset in ("train", "test"):
            path = os.path.join(output_dir, f"predictions_{subset}.csv")
            evaluation.predictions_frame(subset).to_csv(path, index=False)
            self.logger.info(f"Saved {subset} predictions: {path}")

        evaluator.save_metrics(
            evaluation,
            os.path.join(output_dir, "metrics.json"),
            extra={
                "cv_mean": promotion.mean,
                "baseline": promotion.baseline,
                "baseline_mean": None if promotion.baseline is None else promotion.baseline_mean,
                "beats_baseline": promotion.beats_baseline,
            },
        )
        evaluator.plot_diagnostics(evaluation)
