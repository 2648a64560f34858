import os
from typing import Optional

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .hyper_tuner import TuningResult, select_best
from .utils.logger import get_logger


class TuningAnalyzer:
    """Save a family's tuning summary table and plot the metric against each hyperparameter."""

    def __init__(self, output_dir: str = "artifacts", verbose: bool = True):
        self.output_dir = output_dir
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)
        os.makedirs(self.output_dir, exist_ok=True)

    @staticmethod
    def _use_log_scale(values: pd.Series) -> bool:
        numeric = pd.to_numeric(values, errors="coerce").dropna()
        if numeric.empty or (numeric <= 0).any():
            return False
        return numeric.max() / numeric.min() >= 1e3

    def _plot(self, result: TuningResult, summary: pd.DataFrame, path: str) -> None:
        names = result.grid.names
        fig, axes = plt.subplots(1, len(names), figsize=(5 * len(names), 4), squeeze=False)
        best = select_best(result)

        for ax, name in zip(axes[0], names):
            others = [n for n in names if n != name]
            hue = summary[others].astype(str).agg(", ".join, axis=1) if others else None
            # non-numeric values such as max_depth=None are left off the axis
            x = pd.to_numeric(summary[name], errors="coerce")
            sns.scatterplot(x=x, y=summary["mean"], hue=hue, ax=ax, legend=False)
            ax.errorbar(x, summary["mean"], yerr=summary["std_err"], fmt="none", ecolor="grey", alpha=0.5)
            if best[name] is not None:
                ax.axvline(best[name], linestyle="--", color="black", label=f"best={best[name]}")
                ax.legend()
            if self._use_log_scale(x):
                ax.set_xscale("log")
            ax.set_xlabel(name)
            ax.set_ylabel(f"mean {result.metric.name}")

        fig.suptitle(f"Tuning: {result.family}")
        fig.tight_layout()
        fig.savefig(path, dpi=200)
        plt.close(fig)

    def run(self, result: TuningResult, plot: bool = True) -> str:
        """Write tuning_<family>.csv (and .png when the grid has parameters). Returns the CSV path."""
        summary = result.summary()
        csv_path = os.path.join(self.output_dir, f"tuning_{result.family}.csv")
        summary.to_csv(csv_path, index=False)

        if self.verbose:
            ranked = summary.sort_values("mean", ascending=not result.metric.greater_is_better)
            self.logger.info(
                f"Top configurations for '{result.family}':\n{ranked.head(5).to_string(index=False)}"
            )

        plot_path: Optional[str] = None
        if plot and result.grid.names:
            plot_path = os.path.join(self.output_dir, f"tuning_{result.family}.png")
            self._plot(result, summary, plot_path)
            if self.verbose:
                self.logger.info(f"Saved tuning plot: {plot_path}")

        return csv_path
