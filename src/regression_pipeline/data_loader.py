from typing import Optional
import pandas as pd

from .utils.logger import get_logger


class DataLoader:
    """Loads a CSV dataset from a path or URL and optionally samples rows."""

    def __init__(self, path: str, sample_size: Optional[int] = None, random_state: int = 42):
        self.path = path
        self.sample_size = sample_size
        self.random_state = random_state
        self.logger = get_logger(self.__class__.__name__)

    def load(self) -> pd.DataFrame:
        df = pd.read_csv(self.path)
        if self.sample_size and self.sample_size < len(df):
            df = df.sample(self.sample_size, random_state=self.random_state)
            df = df.sort_index().reset_index(drop=True)
        self.logger.info(f"Loaded {self.path}: {df.shape[0]:,} rows x {df.shape[1]} cols")
        return df
