import numpy as np
import pandas as pd
import pytest

from regression_pipeline.dataset import ColumnKind, Dataset
from regression_pipeline.errors import SchemaError
from regression_pipeline.preprocessor import ColumnPolicy, Preprocessor


def _make_small_dataset():
    return Dataset.from_frame(
        pd.DataFrame(
            {
                # continuous numeric, one missing value
                "x": [1.0, 2.0, np.nan, 4.0],
                # nominal
                "color": ["red", "blue", "red", "green"],
                # ordinal
                "size": ["S", "M", "L", "M"],
                # dropped before the missing-value filter
                "junk": [np.nan, 1.0, 1.0, 1.0],
                "y": [1.0, 2.0, 3.0, 4.0],
            }
        ),
        target="y",
    )


def _full_policy():
    return ColumnPolicy(
        drop=["junk"],
        nominal={"color": "blue"},
        ordinal={"size": ["S", "M", "L"]},
    )


def test_preprocessor_drops_columns_then_incomplete_rows():
    out = Preprocessor(_full_policy()).transform(_make_small_dataset())

    assert "junk" not in out.columns
    # only the row with missing x goes; junk's NaN no longer counts
    assert len(out) == 3
    np.testing.assert_allclose(out.y, [1.0, 2.0, 4.0])


def test_preprocessor_one_hot_skips_reference_level():
    out = Preprocessor(_full_policy()).transform(_make_small_dataset())

    assert {"color_green", "color_red"}.issubset(out.columns)
    assert "color_blue" not in out.columns
    assert "color" not in out.columns
    # remaining rows: red, blue, green
    assert out.frame["color_red"].tolist() == [1.0, 0.0, 0.0]
    assert out.frame["color_green"].tolist() == [0.0, 0.0, 1.0]


def test_preprocessor_maps_ordinal_levels_to_rank():
    out = Preprocessor(_full_policy()).transform(_make_small_dataset())
    # remaining rows: S, M, M
    assert out.frame["size"].tolist() == [0.0, 1.0, 1.0]


def test_preprocessor_output_is_fully_numeric():
    out = Preprocessor(_full_policy()).transform(_make_small_dataset())
    assert all(kind == ColumnKind.NUMERIC for kind in out.schema.values())
    assert np.isfinite(out.X.to_numpy(dtype=float)).all()


def test_preprocessor_default_reference_is_first_sorted_level():
    policy = ColumnPolicy(drop=["junk"], ordinal={"size": ["S", "M", "L"]})
    out = Preprocessor(policy).transform(_make_small_dataset())
    # undeclared text column is treated as nominal, "blue" sorts first
    assert "color_blue" not in out.columns
    assert {"color_green", "color_red"}.issubset(out.columns)


def test_preprocessor_ordinal_levels_must_cover_observed_values():
    policy = ColumnPolicy(drop=["junk"], ordinal={"size": ["S", "M"]})
    with pytest.raises(SchemaError, match="do not cover"):
        Preprocessor(policy).transform(_make_small_dataset())


def test_preprocessor_unknown_reference_level_fails():
    policy = ColumnPolicy(nominal={"color": "purple"}, ordinal={"size": ["S", "M", "L"]})
    with pytest.raises(SchemaError, match="not observed"):
        Preprocessor(policy).transform(_make_small_dataset())


def test_preprocessor_missing_column_fails():
    with pytest.raises(SchemaError, match="not found"):
        Preprocessor(ColumnPolicy(drop=["nope"])).transform(_make_small_dataset())


def test_preprocessor_cannot_drop_target():
    with pytest.raises(SchemaError, match="cannot be dropped"):
        Preprocessor(ColumnPolicy(drop=["y"])).transform(_make_small_dataset())


def test_preprocessor_rejects_column_both_kept_and_dropped():
    with pytest.raises(SchemaError, match="both keep and drop"):
        Preprocessor(ColumnPolicy(keep=["x"], drop=["x"])).transform(_make_small_dataset())


def test_preprocessor_records_surviving_input_rows():
    pre = Preprocessor(_full_policy())
    pre.transform(_make_small_dataset())
    # row 2 has a missing x
    assert pre.kept_rows_.tolist() == [0, 1, 3]


def test_preprocessor_keep_list_retains_target():
    out = Preprocessor(ColumnPolicy(keep=["x"])).transform(_make_small_dataset())
    assert out.columns == ["x", "y"]
    assert len(out) == 3


def test_preprocessor_ordered_categorical_uses_its_own_levels():
    df = pd.DataFrame({
        "grade": pd.Categorical(["hi", "lo", "mid"], categories=["lo", "mid", "hi"], ordered=True),
        "y": [1.0, 2.0, 3.0],
    })
    out = Preprocessor().transform(Dataset.from_frame(df, target="y"))
    assert out.frame["grade"].tolist() == [2.0, 0.0, 1.0]


def test_preprocessor_does_not_mutate_input():
    ds = _make_small_dataset()
    before = ds.to_frame()
    _ = Preprocessor(_full_policy()).transform(ds)
    pd.testing.assert_frame_equal(ds.to_frame(), before)


def test_column_policy_from_dict_handles_empty_sections():
    policy = ColumnPolicy.from_dict({"keep": None, "drop": None, "nominal": None, "ordinal": {"s": ("a", "b")}})
    assert policy.keep is None
    assert policy.drop == []
    assert policy.nominal == {}
    assert policy.ordinal == {"s": ["a", "b"]}
