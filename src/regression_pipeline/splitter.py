"""Stratified train/test partitioning and repeated stratified k-fold assignment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype
from sklearn.model_selection import RepeatedStratifiedKFold, train_test_split

from .dataset import Dataset
from .errors import InsufficientDataError, InvalidFoldCountError, SchemaError
from .utils.logger import get_logger


@dataclass(frozen=True, eq=False)
class Split:
    """Disjoint positional row indices covering the whole dataset."""
    train: np.ndarray
    test: np.ndarray


@dataclass(frozen=True, eq=False)
class FoldAssignment:
    """
    Fold label per (repeat, train row).

    labels has shape (repeats, n_rows); labels[r, i] is the validation fold
    of train row i in repeat r.
    """
    labels: np.ndarray
    k: int

    @property
    def repeats(self) -> int:
        return int(self.labels.shape[0])

    @property
    def n_rows(self) -> int:
        return int(self.labels.shape[1])

    def fold_indices(self, repeat: int, fold: int) -> tuple[np.ndarray, np.ndarray]:
        """(analysis rows, assessment rows) for one fold of one repeat."""
        in_fold = self.labels[repeat] == fold
        return np.flatnonzero(~in_fold), np.flatnonzero(in_fold)

    def units(self) -> Iterator[tuple[int, int]]:
        for repeat in range(self.repeats):
            for fold in range(self.k):
                yield repeat, fold


def stratification_labels(values: pd.Series, n_bins: int = 4) -> np.ndarray:
    """
    Group label per row: quantile bin for continuous numeric columns,
    the value itself for anything discrete.
    """
    values = pd.Series(values).reset_index(drop=True)
    if values.isna().any():
        raise SchemaError(f"Stratification column '{values.name}' contains missing values")
    continuous = (
        is_numeric_dtype(values) and not is_bool_dtype(values) and values.nunique() > n_bins
    )
    if continuous:
        return np.asarray(pd.qcut(values, q=n_bins, labels=False, duplicates="drop"), dtype=int)
    return pd.factorize(values, sort=True)[0]


class Splitter:
    """Seeded, stratified partitioning of a Dataset."""

    def __init__(self, n_bins: int = 4, verbose: bool = True):
        self.n_bins = n_bins
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)

    def _labels(
        self,
        dataset: Dataset,
        stratify_column: Optional[str],
        strata: Optional[Sequence[Any]] = None,
    ) -> np.ndarray:
        if strata is not None:
            # raw group values, e.g. a nominal column captured before encoding
            if len(strata) != len(dataset):
                raise SchemaError(f"Expected {len(dataset)} strata values, got {len(strata)}")
            return stratification_labels(pd.Series(np.asarray(strata), name="strata"), self.n_bins)
        column = stratify_column or dataset.target
        if column not in dataset.columns:
            raise SchemaError(f"Stratification column '{column}' not found")
        return stratification_labels(dataset.frame[column], self.n_bins)

    def split_indices(
        self,
        dataset: Dataset,
        train_fraction: float = 0.7,
        stratify_column: Optional[str] = None,
        seed: int = 42,
        strata: Optional[Sequence[Any]] = None,
    ) -> Split:
        if not 0 < train_fraction < 1:
            raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

        labels = self._labels(dataset, stratify_column, strata)
        groups, counts = np.unique(labels, return_counts=True)
        if counts.min() < 2:
            small = groups[counts < 2].tolist()
            raise InsufficientDataError(
                f"Stratification groups {small} have fewer than 2 rows; cannot split"
            )

        try:
            train_idx, test_idx = train_test_split(
                np.arange(len(dataset)),
                train_size=train_fraction,
                stratify=labels,
                random_state=seed,
                shuffle=True,
            )
        except ValueError as exc:
            # e.g. one side too small to hold every group
            raise InsufficientDataError(
                f"Cannot split {len(dataset)} rows into {len(groups)} groups "
                f"with train_fraction={train_fraction}: {exc}"
            ) from exc

        split = Split(train=np.sort(train_idx), test=np.sort(test_idx))
        if self.verbose:
            self.logger.info(
                f"Split {len(dataset)} rows: train={len(split.train)}, test={len(split.test)} "
                f"({len(groups)} strata, seed={seed})"
            )
        return split

    def split(
        self,
        dataset: Dataset,
        train_fraction: float = 0.7,
        stratify_column: Optional[str] = None,
        seed: int = 42,
        strata: Optional[Sequence[Any]] = None,
    ) -> tuple[Dataset, Dataset]:
        """Stratified (Train, Test) datasets; stratifies on the target by default."""
        split = self.split_indices(dataset, train_fraction, stratify_column, seed, strata)
        return dataset.take(split.train), dataset.take(split.test)

    def make_folds(
        self,
        train_set: Dataset,
        k: int = 5,
        repeats: int = 1,
        stratify_column: Optional[str] = None,
        seed: int = 42,
        strata: Optional[Sequence[Any]] = None,
    ) -> FoldAssignment:
        """Repeated stratified k-fold labels for every row of train_set."""
        if repeats < 1:
            raise ValueError(f"repeats must be >= 1, got {repeats}")
        if k < 2:
            raise InvalidFoldCountError(f"k must be >= 2, got {k}")

        labels = self._labels(train_set, stratify_column, strata)
        smallest = int(np.unique(labels, return_counts=True)[1].min())
        if k > smallest:
            raise InvalidFoldCountError(
                f"k={k} exceeds the smallest stratification group ({smallest} rows)"
            )

        cv = RepeatedStratifiedKFold(n_splits=k, n_repeats=repeats, random_state=seed)
        fold_labels = np.full((repeats, len(train_set)), -1, dtype=int)
        for i, (_, val_idx) in enumerate(cv.split(np.zeros(len(labels)), labels)):
            repeat, fold = divmod(i, k)
            fold_labels[repeat, val_idx] = fold

        if self.verbose:
            self.logger.info(f"Assigned {len(train_set)} rows to {k} folds x {repeats} repeats")
        return FoldAssignment(labels=fold_labels, k=k)
