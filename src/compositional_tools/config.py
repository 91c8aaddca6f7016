# compositional_tools/config.py
"""
Explicit run configuration passed to every engine.

No engine reads global random state or module-level options; everything that
changes a result lives on an AnalysisConfig.
"""

import logging
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from compositional_tools.errors import InvalidInputError

logger = logging.getLogger(__name__)

# Empirical zero-replacement constant carried over from the reference
# pipeline. Tunable, not a derived value.
DEFAULT_PSEUDOCOUNT = 0.65

DISTANCE_METHODS = ("aitchison", "unifrac")
TESTS = ("welch", "anova", "kruskal", "wilcoxon")
AGGREGATES = ("median", "mean")
IMPORTANCE_METHODS = ("impurity", "permutation")


@dataclass
class AnalysisConfig:
    """Parameters for one analysis run."""

    pseudocount: float = DEFAULT_PSEUDOCOUNT
    mc_draws: int = 128
    dirichlet_prior: float = 0.5
    permutations: int = 999
    random_seed: Optional[int] = None
    distance_method: str = "aitchison"
    test: str = "welch"
    aggregate: str = "median"
    test_size: float = 0.3
    n_estimators: int = 500
    importance: str = "impurity"
    n_jobs: int = 1
    group_col: str = "Group"

    def __post_init__(self):
        if self.pseudocount <= 0:
            raise InvalidInputError(f"pseudocount must be > 0, got {self.pseudocount}")
        if self.dirichlet_prior <= 0:
            raise InvalidInputError(f"dirichlet_prior must be > 0, got {self.dirichlet_prior}")
        if self.mc_draws < 1:
            raise InvalidInputError(f"mc_draws must be >= 1, got {self.mc_draws}")
        if self.permutations < 1:
            raise InvalidInputError(f"permutations must be >= 1, got {self.permutations}")
        if self.n_estimators < 1:
            raise InvalidInputError(f"n_estimators must be >= 1, got {self.n_estimators}")
        if self.n_jobs < 1:
            raise InvalidInputError(f"n_jobs must be >= 1, got {self.n_jobs}")
        if not 0 < self.test_size < 1:
            raise InvalidInputError(f"test_size must be in (0, 1), got {self.test_size}")
        for name, value, allowed in (
            ("distance_method", self.distance_method, DISTANCE_METHODS),
            ("test", self.test, TESTS),
            ("aggregate", self.aggregate, AGGREGATES),
            ("importance", self.importance, IMPORTANCE_METHODS),
        ):
            if value not in allowed:
                raise InvalidInputError(f"{name} must be one of {allowed}, got '{value}'")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "AnalysisConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidInputError(f"Unknown configuration keys: {unknown}")
        return cls(**values)

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "AnalysisConfig":
        """Load a configuration from a YAML mapping of field names to values."""
        with open(config_path, "r") as file:
            values = yaml.safe_load(file) or {}
        if not isinstance(values, dict):
            raise InvalidInputError(f"Configuration file {config_path} must contain a mapping")
        logger.debug(f"Loaded configuration from {config_path}: {values}")
        return cls.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
