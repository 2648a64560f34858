import json

import numpy as np
import pytest

from regression_pipeline.dataset import Dataset
from regression_pipeline.errors import SchemaMismatchError
from regression_pipeline.evaluator import Evaluator, promote
from regression_pipeline.grid import Hyperparameter, HyperparameterGrid
from regression_pipeline.hyper_tuner import Tuner, TuningResult, select_by_one_std_err
from regression_pipeline.metrics import get_metric
from regression_pipeline.model_families import LassoLinearFamily, NullFamily, TreeFamily
from regression_pipeline.splitter import Splitter


@pytest.fixture
def split(linear_dataset):
    return Splitter(verbose=False).split(linear_dataset, train_fraction=0.7, seed=42)


def _result(family, mean, points=({},), names=()):
    grid = HyperparameterGrid(params=tuple(Hyperparameter(n, tuple(p[n] for p in points)) for n in names))
    return TuningResult(
        family=family,
        metric=get_metric("rmse"),
        grid=grid,
        points=tuple(points),
        units=((0, 0), (0, 1)),
        scores=np.full((len(points), 2), mean, dtype=float),
    )


def test_residuals_are_actual_minus_predicted(split):
    train, test = split
    result = Evaluator(verbose=False).evaluate(LassoLinearFamily(), {"alpha": 0.01}, train, test)

    np.testing.assert_allclose(result.residuals, result.actual - result.predictions)
    np.testing.assert_allclose(result.train_residuals, result.train_actual - result.train_predictions)
    np.testing.assert_array_equal(result.actual, test.y)
    assert len(result.predictions) == len(test)


def test_metric_value_is_holdout_rmse(split):
    train, test = split
    result = Evaluator(verbose=False).evaluate(LassoLinearFamily(), {"alpha": 0.01}, train, test)
    expected = np.sqrt(np.mean((test.y - result.predictions) ** 2))
    assert result.metric_value == pytest.approx(expected)
    assert result.metrics()["test_rmse"] == pytest.approx(expected)


def test_refit_uses_whole_training_set(split):
    train, test = split
    result = Evaluator(verbose=False).evaluate(NullFamily(), {}, train, test)
    np.testing.assert_allclose(result.predictions, train.y.mean())


def test_test_targets_do_not_influence_selection_or_refit(split):
    train, test = split
    folds = Splitter(verbose=False).make_folds(train, k=5, seed=42)
    grid = HyperparameterGrid(params=(Hyperparameter("max_depth", (1, 2, 3, 4)),))
    tuning = Tuner(verbose=False).tune(TreeFamily(), train, folds, grid=grid)
    best = promote({"tree": tuning}, baseline=None).hyperparameters

    evaluator = Evaluator(verbose=False)
    original = evaluator.evaluate(TreeFamily(), best, train, test)
    scrambled_test = test.with_target(np.random.RandomState(0).normal(size=len(test)))
    scrambled = evaluator.evaluate(TreeFamily(), best, train, scrambled_test)

    assert original.hyperparameters == scrambled.hyperparameters
    np.testing.assert_array_equal(original.predictions, scrambled.predictions)
    np.testing.assert_array_equal(original.train_predictions, scrambled.train_predictions)
    assert original.metric_value != scrambled.metric_value


def test_evaluate_rejects_test_with_other_columns(split):
    train, test = split
    other = test.to_frame().assign(extra=1.0)

    with pytest.raises(SchemaMismatchError):
        Evaluator(verbose=False).evaluate(NullFamily(), {}, train, Dataset.from_frame(other, target="y"))


def test_promote_picks_lowest_mean_and_checks_baseline():
    results = {
        "null": _result("null", 5.0),
        "lasso": _result("lasso", 1.0, points=({"alpha": 0.1},), names=("alpha",)),
        "tree": _result("tree", 2.0, points=({"max_depth": 3},), names=("max_depth",)),
    }
    promotion = promote(results)
    assert promotion.family == "lasso"
    assert promotion.hyperparameters == {"alpha": 0.1}
    assert promotion.mean == pytest.approx(1.0)
    assert promotion.baseline_mean == pytest.approx(5.0)
    assert promotion.beats_baseline


def test_promote_flags_family_that_does_not_beat_baseline():
    results = {
        "null": _result("null", 2.0),
        "tree": _result("tree", 2.0, points=({"max_depth": 3},), names=("max_depth",)),
    }
    promotion = promote(results)
    assert promotion.family == "null"
    assert not promotion.beats_baseline


def test_promote_uses_given_selection_rule():
    results = {"lasso": _result("lasso", 1.0, points=({"alpha": 0.1}, {"alpha": 1.0}), names=("alpha",))}
    promotion = promote(results, baseline=None, rule=select_by_one_std_err)
    # equal scores, so the rule's tie-break decides; default direction treats lower as simpler
    assert promotion.hyperparameters == {"alpha": 0.1}
    assert promotion.beats_baseline


def test_promoted_mean_belongs_to_the_promoted_configuration():
    lasso = TuningResult(
        family="lasso",
        metric=get_metric("rmse"),
        grid=HyperparameterGrid(params=(Hyperparameter("alpha", (0.01, 0.1, 1.0), simpler="higher"),)),
        points=({"alpha": 0.01}, {"alpha": 0.1}, {"alpha": 1.0}),
        units=tuple((0, f) for f in range(4)),
        scores=np.array([[0.9, 1.1, 0.9, 1.1], [1.05] * 4, [2.0] * 4]),
    )
    promotion = promote({"null": _result("null", 5.0), "lasso": lasso}, rule=select_by_one_std_err)

    assert promotion.family == "lasso"
    assert promotion.hyperparameters == {"alpha": 0.1}
    assert promotion.mean == pytest.approx(1.05)
    assert promotion.beats_baseline


def test_promote_requires_tuned_baseline():
    with pytest.raises(ValueError, match="Baseline"):
        promote({"tree": _result("tree", 1.0)}, baseline="null")


def test_save_metrics_and_diagnostics(split, tmp_path):
    train, test = split
    evaluator = Evaluator(output_dir=str(tmp_path), verbose=False)
    result = evaluator.evaluate(LassoLinearFamily(), {"alpha": 0.01}, train, test)

    metrics_path = tmp_path / "out" / "metrics.json"
    evaluator.save_metrics(result, str(metrics_path), extra={"beats_baseline": True})
    payload = json.loads(metrics_path.read_text())
    assert payload["family"] == "lasso"
    assert payload["metric_value"] == pytest.approx(result.metric_value)
    assert payload["beats_baseline"] is True
    assert {"test_rmse", "test_mae", "test_rsq", "train_rmse"}.issubset(payload)

    plot_path = evaluator.plot_diagnostics(result)
    assert (tmp_path / "diagnostics.png").exists()
    assert plot_path.endswith("diagnostics.png")


def test_predictions_frame_by_subset(split):
    train, test = split
    result = Evaluator(verbose=False).evaluate(NullFamily(), {}, train, test)
    assert list(result.predictions_frame("train").columns) == ["actual", "predicted", "residual"]
    assert len(result.predictions_frame("train")) == len(train)
    with pytest.raises(ValueError):
        result.predictions_frame("validation")
