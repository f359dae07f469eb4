"""Core utilities for the vital stream monitor."""

import math
import random
import logging
from pathlib import Path
from typing import Any, Optional, Union
import numpy as np
from omegaconf import DictConfig, OmegaConf


def set_seed(seed: int = 42) -> None:
    """Set random seeds for reproducibility.

    Args:
        seed: Random seed value.
    """
    random.seed(seed)
    np.random.seed(seed)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Setup logging configuration.

    Args:
        level: Logging level.
        log_file: Optional log file path.

    Returns:
        Configured logger.
    """
    # Parent of every module logger in the package
    logger = logging.getLogger(__name__.split(".")[0])
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


class RandomSource:
    """Seedable source of uniform random numbers.

    Everything in the stream that needs randomness draws from one of these,
    so tests can pin a seed or pass a scripted stand-in exposing the same
    two methods.
    """

    def __init__(self, seed: Optional[int] = None):
        self.rng = np.random.RandomState(seed)

    def random(self) -> float:
        """Uniform float in [0, 1)."""
        return float(self.rng.random_sample())

    def uniform(self, low: float, high: float) -> float:
        """Uniform float in [low, high)."""
        return float(self.rng.uniform(low, high))


def parse_number(value: Any) -> Optional[float]:
    """Parse a metric reading, returning None when it is missing or unparsable."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def to_number(value: Any) -> float:
    """Coerce a metric reading to a float.

    Missing, unparsable or NaN readings become 0.0 so threshold checks
    never raise.
    """
    number = parse_number(value)
    return 0.0 if number is None else number


def format_metric_name(name: str) -> str:
    """Format metric name for display.

    Args:
        name: Raw metric name.

    Returns:
        Formatted name.
    """
    return name.replace("_", " ").title()


class VitalThresholds:
    """Thresholds used by the emergency evaluator and the simulator."""

    HEART_RANGE = (40, 180)  # bpm, random walk bounds
    HYDRATION_FLOOR = 0.4  # litres
    STRESS_FLOOR = 0.0

    # Emergency triggers
    CRITICAL_HEART = 150
    CRITICAL_STRESS = 8
    CRITICAL_HYDRATION = 0.7

    @classmethod
    def is_emergency(cls, metric: str, value: Any) -> bool:
        """Check a single reading against its emergency trigger.

        Args:
            metric: Metric name (heart, stress or hydration).
            value: Reading, parsed with ``parse_number``.

        Returns:
            True if the reading crosses the trigger. Missing or unparsable
            readings never do.

        Raises:
            ValueError: If the metric has no emergency trigger.
        """
        number = parse_number(value)
        if metric == "heart":
            return number is not None and number > cls.CRITICAL_HEART
        if metric == "stress":
            return number is not None and number > cls.CRITICAL_STRESS
        if metric == "hydration":
            # A missing reading is not a dry reading
            return number is not None and number < cls.CRITICAL_HYDRATION
        raise ValueError(f"No emergency trigger defined for: {metric}")


def load_config(path: Union[str, Path]) -> DictConfig:
    """Load a YAML configuration file.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    return OmegaConf.load(path)


def validate_config(config: DictConfig) -> DictConfig:
    """Validate configuration parameters.

    Args:
        config: Configuration object.

    Returns:
        Validated configuration.

    Raises:
        ValueError: If configuration is invalid.
    """
    required_keys = ["simulator", "buffer", "forecast", "session"]

    for key in required_keys:
        if key not in config:
            raise ValueError(f"Missing required config key: {key}")

    if "interval_ms" not in config.simulator:
        raise ValueError("Simulator interval_ms is required")

    if config.simulator.interval_ms <= 0:
        raise ValueError("Simulator interval must be positive")

    probability = config.simulator.get("anomaly_probability", 0.1)
    if not 0 <= probability <= 1:
        raise ValueError("Anomaly probability must be within [0, 1]")

    if config.buffer.get("capacity", 0) <= 0:
        raise ValueError("Buffer capacity must be positive")

    if config.forecast.get("horizon", 0) <= 0:
        raise ValueError("Forecast horizon must be positive")

    if config.session.get("ticks", 0) <= 0:
        raise ValueError("Session ticks must be positive")

    return config
