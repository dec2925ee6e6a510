"""
Configuration management for curve_cluster.

Loads configuration from environment variables (typically from a .env file).
Uses python-dotenv to load .env automatically.

Usage:
    from curve_cluster.config import config

    # Run parameters taken from CURVE_CLUSTER_* variables
    cfg = config.clustering
    clustering = run(points, **cfg.run_kwargs())

    # alpha (CURVE_CLUSTER_ALPHA) weights the B-Cubed F-measure
    score = compare_with_config(clustering, gold, cfg)

The core entry points never read this module implicitly; callers pass the
values they want.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

# Look for .env in project root (parent of src/)
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

ENV_PREFIX = "CURVE_CLUSTER_"


@dataclass
class ClusteringConfig:
    """Parameters for one clustering run."""

    k: int = 10
    permutations: int = 4
    window: int = 10
    seed: int = 0
    bits_per_dimension: Optional[int] = None  # None: smallest depth that fits the data
    linkage_distance: Optional[float] = None  # None: estimate from neighbor distances
    density_threshold: Optional[float] = None
    min_density_count: Optional[int] = None
    alpha: float = 0.5  # B-Cubed weight, used by compare_with_config
    max_workers: int = 1

    def __post_init__(self):
        """Validate eagerly so a bad config never reaches the pipeline."""
        self.validate()

    def validate(self) -> None:
        """
        Check every field.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if self.k < 1:
            raise ConfigError(f"k must be >= 1, got {self.k}")
        if self.permutations < 1:
            raise ConfigError(f"permutations must be >= 1, got {self.permutations}")
        if self.window < 1:
            raise ConfigError(f"window must be >= 1, got {self.window}")
        if self.bits_per_dimension is not None and self.bits_per_dimension < 1:
            raise ConfigError(
                f"bits_per_dimension must be >= 1, got {self.bits_per_dimension}"
            )
        if self.linkage_distance is not None and self.linkage_distance < 0:
            raise ConfigError(
                f"linkage_distance must be >= 0, got {self.linkage_distance}"
            )
        if self.density_threshold is not None and self.density_threshold < 0:
            raise ConfigError(
                f"density_threshold must be >= 0, got {self.density_threshold}"
            )
        if self.min_density_count is not None and self.min_density_count < 1:
            raise ConfigError(
                f"min_density_count must be >= 1, got {self.min_density_count}"
            )
        if not 0.0 <= self.alpha <= 1.0:
            raise ConfigError(f"alpha must be in [0, 1], got {self.alpha}")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")

    def run_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for :func:`curve_cluster.algorithms.pipeline.run`."""
        return {
            "k": self.k,
            "permutations": self.permutations,
            "window": self.window,
            "seed": self.seed,
            "bits_per_dimension": self.bits_per_dimension,
            "linkage_distance": self.linkage_distance,
            "density_threshold": self.density_threshold,
            "min_density_count": self.min_density_count,
            "max_workers": self.max_workers,
        }


def _env(name: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}") from e


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = _env(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} must be a number, got {value!r}") from e


class Config:
    """
    Application configuration loaded from environment variables.

    Environment variables can be set:
    1. In a .env file in the project root
    2. In the system environment
    3. In a container/deployment environment
    """

    def __init__(self):
        """Load configuration from environment."""
        self.log_level = _env("LOG_LEVEL") or "INFO"
        # Lazy-loaded so a malformed variable only fails when it is used
        self._clustering: Optional[ClusteringConfig] = None

    @property
    def clustering(self) -> ClusteringConfig:
        """
        Clustering parameters from ``CURVE_CLUSTER_*`` variables.

        Raises:
            ConfigError: If a variable is malformed or out of range
        """
        if self._clustering is None:
            defaults = ClusteringConfig()
            self._clustering = ClusteringConfig(
                k=_env_int("K", defaults.k),
                permutations=_env_int("PERMUTATIONS", defaults.permutations),
                window=_env_int("WINDOW", defaults.window),
                seed=_env_int("SEED", defaults.seed),
                bits_per_dimension=_env_int("BITS_PER_DIMENSION", None),
                linkage_distance=_env_float("LINKAGE_DISTANCE", None),
                density_threshold=_env_float("DENSITY_THRESHOLD", None),
                min_density_count=_env_int("MIN_DENSITY_COUNT", None),
                alpha=_env_float("ALPHA", defaults.alpha),
                max_workers=_env_int("MAX_WORKERS", defaults.max_workers),
            )
        return self._clustering

    def reload(self) -> None:
        """Re-read the environment on next access."""
        self.log_level = _env("LOG_LEVEL") or "INFO"
        self._clustering = None


# Global config instance
config = Config()
