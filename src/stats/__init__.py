"""Correlation, smoothing and forecasting over metric series."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Sequence
import numpy as np
import pandas as pd
from scipy import stats

from ..utils import RandomSource, to_number


logger = logging.getLogger(__name__)


class InvalidInputError(ValueError):
    """Raised when a series is too short, mismatched or a parameter is out of range."""


# Twelve days of history used by the trend predictions
SLEEP_HISTORICAL = (8, 7.5, 8.2, 6.8, 7.9, 9, 8.5, 7.8, 8.1, 7.2, 8.3, 7.9)
HYDRATION_HISTORICAL = (2.1, 2.4, 2.0, 2.5, 2.3, 2.8, 2.6, 2.2, 2.7, 2.1, 2.9, 2.5)
STRESS_HISTORICAL = (4, 6, 5, 7, 5, 3, 4, 6, 5, 7, 4, 3)


def _as_array(series: Sequence[float]) -> np.ndarray:
    return np.asarray(series, dtype=float)


def _check_pair(x: Sequence[float], y: Sequence[float], min_length: int) -> None:
    if len(x) != len(y) or len(x) < min_length:
        raise InvalidInputError(
            f"Series must have equal length and at least {min_length} elements "
            f"(got {len(x)} and {len(y)})"
        )


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson product-moment correlation.

    Args:
        x: First series.
        y: Second series, same length as ``x``.

    Returns:
        Coefficient in [-1, 1], or 0 when either series is constant.

    Raises:
        InvalidInputError: If the lengths differ or are below 2.
    """
    _check_pair(x, y, 2)
    x, y = _as_array(x), _as_array(y)

    dx = x - x.mean()
    dy = y - y.mean()
    # Unnormalized sums; the 1/n factors cancel in the ratio
    cross = float(np.sum(dx * dy))
    denominator = float(np.sqrt(np.sum(dx * dx) * np.sum(dy * dy)))

    if denominator == 0:
        return 0.0
    return float(np.clip(cross / denominator, -1.0, 1.0))


def spearman(x: Sequence[float], y: Sequence[float]) -> float:
    """Spearman rank correlation, with tied values sharing their average rank.

    Raises:
        InvalidInputError: If the lengths differ or are below 2.
    """
    _check_pair(x, y, 2)
    return pearson(
        stats.rankdata(_as_array(x), method="average"),
        stats.rankdata(_as_array(y), method="average")
    )


def covariance(x: Sequence[float], y: Sequence[float]) -> float:
    """Sample covariance with an ``n - 1`` denominator.

    A single pair has no sample covariance and yields NaN.

    Raises:
        InvalidInputError: If the lengths differ or are below 1.
    """
    _check_pair(x, y, 1)
    x, y = _as_array(x), _as_array(y)

    n = len(x)
    if n == 1:
        return float("nan")
    return float(np.sum((x - x.mean()) * (y - y.mean())) / (n - 1))


class MovingAverage:
    """Lazy simple moving average.

    Iterating yields the mean of each contiguous ``window``-sized slice;
    every new iteration starts from the beginning again.
    """

    def __init__(self, series: Sequence[float], window: int):
        if window < 1:
            raise InvalidInputError("Moving average window must be at least 1")
        self.series = tuple(float(value) for value in series)
        self.window = window

    def __len__(self) -> int:
        return max(0, len(self.series) - self.window + 1)

    def __iter__(self) -> Iterator[float]:
        for i in range(len(self)):
            yield sum(self.series[i:i + self.window]) / self.window

    def to_list(self) -> List[float]:
        return list(self)


def moving_average(series: Sequence[float], window: int = 3) -> MovingAverage:
    """Moving average of ``series`` over ``window`` points."""
    return MovingAverage(series, window)


def exponential_smoothing(series: Sequence[float], alpha: float = 0.3) -> List[float]:
    """Simple exponential smoothing seeded with the first value.

    Raises:
        InvalidInputError: If alpha is outside [0, 1].
    """
    if not 0 <= alpha <= 1:
        raise InvalidInputError("Smoothing alpha must be within [0, 1]")

    smoothed: List[float] = []
    for value in series:
        value = float(value)
        smoothed.append(value if not smoothed else alpha * value + (1 - alpha) * smoothed[-1])
    return smoothed


@dataclass(frozen=True)
class ForecastResult:
    """Point forecast with a 95% band and a nominal accuracy figure."""

    forecast: List[float]
    lower_bound: List[float]
    upper_bound: List[float]
    accuracy: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "forecast": list(self.forecast),
            "confidenceLower": list(self.lower_bound),
            "confidenceUpper": list(self.upper_bound),
            "accuracy": self.accuracy,
        }


def forecast(
    series: Sequence[float],
    horizon: int = 7,
    rng: Optional[RandomSource] = None,
    window: int = 3,
    alpha: float = 0.3
) -> ForecastResult:
    """Coarse illustrative forecast.

    Each point blends a moving-average value with an exponential-smoothing
    value, walking back from the most recent ones, plus a small jitter.
    The band is ``1.96`` population standard deviations of the last five
    values, the same width for every point. Accuracy is a mocked figure
    drawn uniformly from [0.80, 0.95].

    Args:
        series: Historical values, oldest first.
        horizon: Number of points to forecast.
        rng: Random source for jitter and accuracy.
        window: Moving-average window.
        alpha: Smoothing factor.

    Returns:
        Forecast result with three sequences of length ``horizon``.

    Raises:
        InvalidInputError: If the series is empty or horizon is below 1.
    """
    if len(series) == 0:
        raise InvalidInputError("Cannot forecast an empty series")
    if horizon < 1:
        raise InvalidInputError("Forecast horizon must be at least 1")

    rng = rng or RandomSource()
    values = _as_array(series)

    ma = moving_average(values, window).to_list() or [float(values.mean())]
    es = exponential_smoothing(values, alpha)
    half_width = 1.96 * float(np.std(values[-5:]))

    points = []
    for i in range(horizon):
        ma_value = ma[len(ma) - 1 - i] if i < len(ma) else ma[-1]
        es_value = es[len(es) - 1 - i] if i < len(es) else es[-1]
        points.append((ma_value + es_value) / 2 + (rng.random() - 0.5) * 0.5)

    # Built newest-first; report oldest-first
    points.reverse()

    result = ForecastResult(
        forecast=points,
        lower_bound=[point - half_width for point in points],
        upper_bound=[point + half_width for point in points],
        accuracy=rng.uniform(0.80, 0.95)
    )
    logger.debug(f"Forecast {horizon} points from {len(values)} values, band +/-{half_width:.3f}")
    return result


def predict_sleep_trend(horizon: int = 7, rng: Optional[RandomSource] = None) -> ForecastResult:
    return forecast(SLEEP_HISTORICAL, horizon, rng)


def predict_hydration_trend(horizon: int = 7, rng: Optional[RandomSource] = None) -> ForecastResult:
    return forecast(HYDRATION_HISTORICAL, horizon, rng)


def predict_stress_trend(horizon: int = 7, rng: Optional[RandomSource] = None) -> ForecastResult:
    return forecast(STRESS_HISTORICAL, horizon, rng)


def trend_direction(series: Sequence[float]) -> str:
    """'up', 'down' or 'stable' comparing the last value to the first (+/-5%)."""
    if len(series) < 2:
        return "stable"
    first, last = float(series[0]), float(series[-1])
    if last > first * 1.05:
        return "up"
    if last < first * 0.95:
        return "down"
    return "stable"


def correlation_insight(label1: str, label2: str, value: float) -> str:
    """Plain-language reading of a correlation coefficient."""
    if value > 0.6:
        return f"{label1} and {label2} are strongly correlated."
    if value > 0.3:
        return f"{label1} and {label2} have mild correlation."
    if value < -0.6:
        return f"{label1} increases as {label2} decreases."
    if value < -0.3:
        return f"{label1} and {label2} have mild negative correlation."
    return f"{label1} and {label2} are mostly independent."


def correlation_matrix(series: Mapping[str, Sequence[float]], method: str = "pearson") -> pd.DataFrame:
    """Pairwise correlation of equally long named series.

    Raises:
        ValueError: If method is not 'pearson' or 'spearman'.
        InvalidInputError: If the series lengths differ or are below 2.
    """
    methods = {"pearson": pearson, "spearman": spearman}
    if method not in methods:
        raise ValueError(f"Unknown correlation method: {method}. Available methods: {list(methods.keys())}")
    correlate = methods[method]

    names = list(series.keys())
    matrix = pd.DataFrame(np.eye(len(names)), index=names, columns=names)
    for i, a in enumerate(names):
        for b in names[i + 1:]:
            matrix.loc[a, b] = matrix.loc[b, a] = correlate(series[a], series[b])
    return matrix


def z_score_anomalies(values: Sequence[float], threshold: float = 2.5) -> List[Dict[str, float]]:
    """Points whose z-score against the whole series exceeds ``threshold``."""
    if len(values) == 0:
        return []
    data = np.array([to_number(v) for v in values], dtype=float)
    mean, std = data.mean(), data.std()

    anomalies = []
    for index, value in enumerate(data):
        z = 0.0 if std == 0 else (value - mean) / std
        if abs(z) > threshold:
            anomalies.append({"index": index, "value": float(value), "z": round(float(z), 3)})
    return anomalies


def rolling_deviation_anomalies(
    values: Sequence[float],
    window: int = 7,
    threshold: float = 2.0
) -> List[Dict[str, float]]:
    """Points deviating from the mean of the preceding ``window`` values."""
    data = np.array([to_number(v) for v in values], dtype=float)

    anomalies = []
    for i in range(window, len(data)):
        preceding = data[i - window:i]
        mean, std = preceding.mean(), preceding.std()
        z = 0.0 if std == 0 else (data[i] - mean) / std
        if abs(z) > threshold:
            anomalies.append({
                "index": i,
                "value": float(data[i]),
                "window_mean": round(float(mean), 2),
                "z": round(float(z), 2),
                "severity": float(abs(z)),
            })
    return anomalies


def detect_all_anomalies(series: Mapping[str, Sequence[float]]) -> Dict[str, Dict[str, list]]:
    """Run both detectors over every named series."""
    return {
        name: {
            "z_anomalies": z_score_anomalies(values, 2.5),
            "rolling_anomalies": rolling_deviation_anomalies(values, 7, 2),
        }
        for name, values in series.items()
    }
