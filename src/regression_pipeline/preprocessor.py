from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
import pandas as pd
from sklearn.preprocessing import OneHotEncoder

from regression_pipeline.dataset import ColumnKind, Dataset
from regression_pipeline.errors import SchemaError
from regression_pipeline.utils.logger import get_logger


@dataclass
class ColumnPolicy:
    """
    Declarative column handling.

    keep:
        If given, only these feature columns (plus the target) are retained.
    drop:
        Columns removed before anything else happens.
    nominal:
        Column -> reference level. The reference level gets no indicator
        column; None means the first level in sorted order.
    ordinal:
        Column -> levels from lowest to highest rank.
    """
    keep: Optional[list[str]] = None
    drop: list[str] = field(default_factory=list)
    nominal: dict[str, Any] = field(default_factory=dict)
    ordinal: dict[str, list[Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> "ColumnPolicy":
        return cls(
            keep=cfg.get("keep"),
            drop=list(cfg.get("drop") or []),
            nominal=dict(cfg.get("nominal") or {}),
            ordinal={k: list(v) for k, v in (cfg.get("ordinal") or {}).items()},
        )


class Preprocessor:
    """Selects columns, drops incomplete rows and encodes nominal/ordinal features."""

    def __init__(self, policy: Optional[ColumnPolicy] = None, verbose: bool = False):
        """
        Parameters
        ----------
        policy:
            Column policy to apply. Defaults to keeping everything and
            one-hot encoding every non-numeric feature.
        verbose:
            If True, logs the resulting feature groups.
        """
        self.policy = policy or ColumnPolicy()
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)
        self.feature_names_: Optional[list[str]] = None
        self.kept_rows_: Optional[np.ndarray] = None

    def _check_columns(self, dataset: Dataset) -> None:
        policy = self.policy
        named = set(policy.drop) | set(policy.nominal) | set(policy.ordinal) | set(policy.keep or [])
        missing = sorted(named - set(dataset.columns))
        if missing:
            raise SchemaError(f"Columns not found in dataset: {missing}")
        if dataset.target in policy.drop:
            raise SchemaError(f"Target column '{dataset.target}' cannot be dropped")
        kept_and_dropped = sorted(set(policy.keep or []) & set(policy.drop))
        if kept_and_dropped:
            raise SchemaError(f"Columns listed in both keep and drop: {kept_and_dropped}")
        both = sorted(set(policy.nominal) & set(policy.ordinal))
        if both:
            raise SchemaError(f"Columns declared both nominal and ordinal: {both}")

    def _select(self, dataset: Dataset) -> pd.DataFrame:
        df = dataset.to_frame().drop(columns=self.policy.drop)
        if self.policy.keep is not None:
            keep = [c for c in self.policy.keep if c != dataset.target]
            df = df[keep + [dataset.target]]
        df = df.dropna()
        self.kept_rows_ = df.index.to_numpy()
        return df.reset_index(drop=True)

    def _encode_nominal(self, df: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
        if not columns:
            return df
        values = df[columns].astype(str)
        categories, references = [], []
        for col in columns:
            levels = sorted(values[col].unique())
            declared = self.policy.nominal.get(col)
            if declared is not None and str(declared) not in levels:
                raise SchemaError(
                    f"Reference level {declared!r} not observed in column '{col}' (levels: {levels})"
                )
            categories.append(levels)
            references.append(levels[0] if declared is None else str(declared))

        encoder = OneHotEncoder(categories=categories, drop=references, sparse_output=False)
        encoded = pd.DataFrame(
            encoder.fit_transform(values),
            columns=encoder.get_feature_names_out(columns),
            index=df.index,
        )
        return pd.concat([df.drop(columns=columns), encoded], axis=1)

    @staticmethod
    def _encode_ordinal(df: pd.DataFrame, levels_by_col: dict[str, list[Any]]) -> pd.DataFrame:
        out = df.copy()
        for col, levels in levels_by_col.items():
            observed = out[col].astype(object)
            uncovered = sorted(set(observed.unique()) - set(levels), key=str)
            if uncovered:
                raise SchemaError(
                    f"Ordinal levels for '{col}' do not cover observed values {uncovered}"
                )
            rank = {level: float(i) for i, level in enumerate(levels)}
            out[col] = observed.map(rank).astype(float)
        return out

    def transform(self, dataset: Dataset) -> Dataset:
        """Return a new, fully numeric Dataset. The input is left untouched."""
        self._check_columns(dataset)
        df = self._select(dataset)
        features = [c for c in df.columns if c != dataset.target]

        ordinal_levels: dict[str, list[Any]] = {}
        nominal_cols: list[str] = []
        for col in features:
            kind = dataset.schema[col]
            if col in self.policy.ordinal:
                ordinal_levels[col] = list(self.policy.ordinal[col])
            elif col in self.policy.nominal:
                nominal_cols.append(col)
            elif kind == ColumnKind.ORDINAL:
                if not isinstance(df[col].dtype, pd.CategoricalDtype):
                    raise SchemaError(f"Ordinal column '{col}' has no declared level ordering")
                # ordered categoricals carry their own level ordering
                ordinal_levels[col] = list(df[col].cat.categories)
            elif kind != ColumnKind.NUMERIC:
                nominal_cols.append(col)

        df = self._encode_ordinal(df, ordinal_levels)
        df = self._encode_nominal(df, nominal_cols)

        self.feature_names_ = [c for c in df.columns if c != dataset.target]
        if self.verbose:
            self.logger.info(
                f"Preprocessed: rows={len(df)} (dropped {len(dataset) - len(df)} incomplete), "
                f"nominal={len(nominal_cols)}, ordinal={len(ordinal_levels)}, "
                f"features={len(self.feature_names_)}"
            )

        schema = {c: ColumnKind.NUMERIC for c in df.columns}
        return Dataset.from_frame(df, target=dataset.target, schema=schema)
