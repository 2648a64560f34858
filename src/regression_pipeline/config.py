from dataclasses import dataclass, field
from typing import Any, Dict
import yaml

REQUIRED_DATA_KEYS = ("path", "target_col")


@dataclass
class Config:
    """Model-selection settings, one dict per YAML section."""
    data: Dict[str, Any]
    preprocessing: Dict[str, Any] = field(default_factory=dict)
    model: Dict[str, Any] = field(default_factory=dict)
    validation: Dict[str, Any] = field(default_factory=dict)
    output: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        missing = [k for k in REQUIRED_DATA_KEYS if not self.data.get(k)]
        if missing:
            raise ValueError(f"Config 'data' section is missing {missing}")

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        with open(path, "r") as f:
            cfg = yaml.safe_load(f) or {}
        unknown = sorted(set(cfg) - {"data", "preprocessing", "model", "validation", "output"})
        if unknown:
            raise ValueError(f"Unknown config sections: {unknown}")
        # empty sections parse as None
        sections = {k: v or {} for k, v in cfg.items()}
        sections.setdefault("data", {})
        return cls(**sections)
