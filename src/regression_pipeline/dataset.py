from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from .errors import SchemaError


class ColumnKind(str, Enum):
    NUMERIC = "numeric"
    NOMINAL = "nominal"
    ORDINAL = "ordinal"


def infer_kind(series: pd.Series) -> ColumnKind:
    """Ordered categoricals are ordinal, other non-numeric columns nominal."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        return ColumnKind.ORDINAL if series.dtype.ordered else ColumnKind.NOMINAL
    if is_numeric_dtype(series) and not is_bool_dtype(series):
        return ColumnKind.NUMERIC
    return ColumnKind.NOMINAL


@dataclass(frozen=True, eq=False)
class Dataset:
    """
    A table with a declared schema and a numeric regression target.

    The frame is copied on construction and only handed out as copies, so a
    Dataset never changes after it is created. Row positions (0..n-1) are the
    row identifiers used by splits and fold assignments.
    """
    frame: pd.DataFrame
    target: str
    schema: Mapping[str, ColumnKind] = field(default_factory=dict)

    def __post_init__(self):
        if self.target not in self.frame.columns:
            raise SchemaError(f"Target column '{self.target}' not found")
        if not is_numeric_dtype(self.frame[self.target]) or is_bool_dtype(self.frame[self.target]):
            raise SchemaError(f"Target column '{self.target}' must be numeric")

        unknown = set(self.schema) - set(self.frame.columns)
        if unknown:
            raise SchemaError(f"Schema names columns not in the data: {sorted(unknown)}")

        schema = {col: ColumnKind(self.schema.get(col, infer_kind(self.frame[col])))
                  for col in self.frame.columns}
        frame = self.frame.reset_index(drop=True).copy()
        object.__setattr__(self, "frame", frame)
        object.__setattr__(self, "schema", MappingProxyType(schema))

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        target: str,
        schema: Optional[Mapping[str, ColumnKind | str]] = None,
    ) -> "Dataset":
        return cls(frame=df, target=target, schema=dict(schema or {}))

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def columns(self) -> list[str]:
        return list(self.frame.columns)

    @property
    def feature_names(self) -> list[str]:
        return [c for c in self.frame.columns if c != self.target]

    @property
    def X(self) -> pd.DataFrame:
        return self.frame[self.feature_names].copy()

    @property
    def y(self) -> np.ndarray:
        return self.frame[self.target].to_numpy(dtype=float)

    def columns_of(self, kind: ColumnKind) -> list[str]:
        return [c for c in self.feature_names if self.schema[c] == kind]

    def to_frame(self) -> pd.DataFrame:
        return self.frame.copy()

    def take(self, rows: Sequence[int] | np.ndarray) -> "Dataset":
        """New Dataset holding the given positional rows, in the given order."""
        subset = self.frame.iloc[np.asarray(rows, dtype=int)]
        return Dataset(frame=subset, target=self.target, schema=dict(self.schema))

    def with_target(self, values: Sequence[float] | np.ndarray) -> "Dataset":
        if len(values) != len(self):
            raise SchemaError(f"Expected {len(self)} target values, got {len(values)}")
        frame = self.frame.copy()
        frame[self.target] = np.asarray(values, dtype=float)
        return Dataset(frame=frame, target=self.target, schema=dict(self.schema))
