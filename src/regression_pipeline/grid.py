from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional, Sequence

import numpy as np
from sklearn.model_selection import ParameterGrid, ParameterSampler


@dataclass(frozen=True)
class Hyperparameter:
    """
    A named hyperparameter and its candidate values.

    simpler:
        "lower" if smaller values give a simpler model (e.g. tree depth),
        "higher" if larger values do (e.g. a regularization penalty).
        Used to break ties between equally scoring configurations.
    """
    name: str
    values: tuple[Any, ...]
    simpler: str = "lower"

    def __post_init__(self):
        if self.simpler not in ("lower", "higher"):
            raise ValueError(f"simpler must be 'lower' or 'higher', got {self.simpler!r}")
        if len(self.values) == 0:
            raise ValueError(f"Hyperparameter '{self.name}' has no candidate values")
        object.__setattr__(self, "values", tuple(self.values))

    @classmethod
    def regular(
        cls,
        name: str,
        low: float,
        high: float,
        levels: int,
        log: bool = False,
        integer: bool = False,
        simpler: str = "lower",
    ) -> "Hyperparameter":
        """Evenly spaced candidates between low and high (log10-spaced if log=True)."""
        if log:
            values = np.logspace(np.log10(low), np.log10(high), levels)
        else:
            values = np.linspace(low, high, levels)
        if integer:
            values = sorted({int(round(v)) for v in values})
        else:
            values = [float(v) for v in values]
        return cls(name=name, values=tuple(values), simpler=simpler)

    def simplicity(self, value: Any) -> float:
        """Smaller is simpler. None (e.g. unlimited depth) is the most complex."""
        if value is None:
            return float("inf")
        if isinstance(value, (int, float, np.number)):
            return float(value) if self.simpler == "lower" else -float(value)
        return 0.0


@dataclass(frozen=True)
class HyperparameterGrid:
    """
    Cross product of hyperparameter candidates, or an explicit list of points.

    An empty grid has exactly one point: the empty configuration.
    """
    params: tuple[Hyperparameter, ...] = ()
    explicit: Optional[tuple[Mapping[str, Any], ...]] = field(default=None)

    @classmethod
    def from_points(
        cls,
        points: Iterable[Mapping[str, Any]],
        params: Sequence[Hyperparameter] = (),
    ) -> "HyperparameterGrid":
        points = tuple(dict(p) for p in points)
        if not points:
            raise ValueError("An explicit grid needs at least one point")
        names = set(points[0])
        if any(set(p) != names for p in points):
            raise ValueError("All explicit grid points must name the same hyperparameters")
        if not params:
            params = tuple(
                Hyperparameter(n, tuple(dict.fromkeys(p[n] for p in points))) for n in points[0]
            )
        return cls(params=tuple(params), explicit=points)

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.params]

    def __getitem__(self, name: str) -> Hyperparameter:
        for p in self.params:
            if p.name == name:
                return p
        raise KeyError(name)

    def points(self) -> list[dict[str, Any]]:
        """All grid points; the cross product varies the last parameter fastest."""
        if self.explicit is not None:
            return [dict(p) for p in self.explicit]
        # ParameterGrid sorts keys; reorder so the first declared parameter varies slowest
        order = self.names
        points = list(ParameterGrid({p.name: list(p.values) for p in self.params}))
        return sorted(
            ({n: pt[n] for n in order} for pt in points),
            key=lambda pt: tuple(self[n].values.index(pt[n]) for n in order),
        )

    def __len__(self) -> int:
        return len(self.points())

    def with_values(self, **overrides: Sequence[Any]) -> "HyperparameterGrid":
        """Copy of the grid with the candidate values of some parameters replaced."""
        unknown = set(overrides) - set(self.names)
        if unknown:
            raise KeyError(f"Unknown hyperparameters: {sorted(unknown)}")
        params = tuple(
            replace(p, values=tuple(overrides[p.name])) if p.name in overrides else p
            for p in self.params
        )
        return HyperparameterGrid(params=params)

    def sample(self, n_points: int, seed: int = 42) -> "HyperparameterGrid":
        """Seeded random subset of the cross product (all points if n_points covers it)."""
        if n_points >= len(self):
            return self
        sampled = ParameterSampler(
            {p.name: list(p.values) for p in self.params},
            n_iter=n_points,
            random_state=seed,
        )
        return HyperparameterGrid.from_points(
            ({n: pt[n] for n in self.names} for pt in sampled), params=self.params
        )

    def simplicity_key(self, point: Mapping[str, Any]) -> tuple[float, ...]:
        return tuple(p.simplicity(point.get(p.name)) for p in self.params)
