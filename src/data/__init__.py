"""Vital-signs stream: random walk, simulator, anomaly injection and buffers."""

import time
import threading
import logging
from collections import deque
from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple
import numpy as np
import pandas as pd

from ..utils import RandomSource, VitalThresholds


logger = logging.getLogger(__name__)

CANONICAL_METRICS = ("heart", "steps", "hydration", "stress")
DEFAULT_BUFFER_CAPACITY = 60


@dataclass(frozen=True)
class MetricSample:
    """A single timestamped reading of one metric."""

    timestamp: int
    value: float


@dataclass
class VitalState:
    """Current value of every tracked metric."""

    heart: float = 70.0
    steps: int = 0
    hydration: float = 1.8
    stress: float = 3.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def copy(self) -> "VitalState":
        return replace(self)


@dataclass(frozen=True)
class Tick:
    """Payload delivered to the tick callback."""

    timestamp: int
    t: int
    heart: float
    steps: int
    hydration: float
    stress: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def value(self, metric: str) -> float:
        return getattr(self, metric)

    def to_state(self) -> VitalState:
        return VitalState(
            heart=self.heart,
            steps=self.steps,
            hydration=self.hydration,
            stress=self.stress
        )


def random_walk(
    previous: float,
    volatility: float,
    min_value: float,
    max_value: float,
    rng: Optional[RandomSource] = None
) -> float:
    """Advance a metric by one bounded random-walk step.

    The step is proportional to the previous value:
    ``(u - 0.5) * volatility * previous`` with ``u`` uniform in [0, 1).

    Args:
        previous: Current value.
        volatility: Relative step size.
        min_value: Lower clamp.
        max_value: Upper clamp, must not be below ``min_value``.
        rng: Random source, a fresh unseeded one if omitted.

    Returns:
        Next value clamped to [min_value, max_value], rounded to 2 places.
    """
    rng = rng or RandomSource()
    change = (rng.random() - 0.5) * volatility * previous
    value = min(max(previous + change, min_value), max_value)
    # Rounding can only push a value past a bound by less than 0.005
    return min(max(round(value, 2), min_value), max_value)


class StreamSimulator:
    """Periodic generator of vital-sign ticks.

    One simulator owns one timer thread, one ``VitalState`` and one tick
    counter. Ticks are delivered to ``on_tick`` in firing order and never
    overlap: delivery happens under a lock that ``stop`` also takes, so no
    tick reaches the callback once ``stop`` has returned. An exception from
    the callback on the timer thread is logged and the timer keeps firing.
    """

    def __init__(
        self,
        on_tick: Callable[[Tick], None],
        interval_ms: int = 1000,
        rng: Optional[RandomSource] = None
    ):
        """Initialize the simulator without starting it.

        Args:
            on_tick: Callback invoked with each ``Tick``.
            interval_ms: Tick period in milliseconds.
            rng: Random source for every metric update.

        Raises:
            ValueError: If interval_ms is not positive.
        """
        self.on_tick = on_tick
        self.rng = rng or RandomSource()
        self._interval_ms = self._check_interval(interval_ms)
        self._state = VitalState()
        self._t = 0
        self._lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        """Start the timer. No-op if already running."""
        with self._lock:
            if self._thread is not None:
                return
            self._start_timer()
        logger.info(f"Simulator started at {self._interval_ms} ms interval")

    def stop(self) -> None:
        """Stop the timer. No-op if not running."""
        with self._lock:
            thread = self._halt_timer()
        if thread is None:
            return
        self._join(thread)
        logger.info("Simulator stopped")

    def set_interval(self, interval_ms: int) -> None:
        """Change the tick period, restarting the timer if it is running."""
        self._check_interval(interval_ms)
        with self._lock:
            thread = self._halt_timer()
            self._interval_ms = interval_ms
            if thread is not None:
                self._start_timer()
        if thread is not None:
            self._join(thread)
        logger.info(f"Simulator interval set to {interval_ms} ms")

    def get_state(self) -> VitalState:
        """Return a copy of the current state."""
        with self._lock:
            return self._state.copy()

    def tick(self) -> Tick:
        """Advance all metrics one step and deliver the tick synchronously."""
        with self._lock:
            tick = self._advance()
            self.on_tick(tick)
        return tick

    @staticmethod
    def _check_interval(interval_ms: int) -> int:
        if interval_ms <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval_ms} ms")
        return interval_ms

    def _start_timer(self) -> None:
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(stop_event, self._interval_ms / 1000.0),
            name="vital-stream-timer",
            daemon=True
        )
        self._stop_event = stop_event
        self._thread = thread
        thread.start()

    def _halt_timer(self) -> Optional[threading.Thread]:
        if self._thread is None:
            return None
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        self._stop_event = None
        return thread

    @staticmethod
    def _join(thread: threading.Thread) -> None:
        # A callback may stop its own simulator from the timer thread
        if thread is not threading.current_thread():
            thread.join()

    def _run(self, stop_event: threading.Event, interval_s: float) -> None:
        while not stop_event.wait(interval_s):
            with self._lock:
                if stop_event.is_set():
                    break
                tick = self._advance()
                try:
                    self.on_tick(tick)
                except Exception:
                    logger.exception(f"Tick callback failed at tick {tick.t}")

    def _advance(self) -> Tick:
        state = self._state
        self._t += 1

        low, high = VitalThresholds.HEART_RANGE
        state.heart = random_walk(state.heart, 0.07, low, high, self.rng)
        state.steps = max(0, state.steps + int(np.floor(self.rng.random() * 20 + 0.5)))
        state.hydration = round(
            max(VitalThresholds.HYDRATION_FLOOR, state.hydration + (self.rng.random() - 0.5) * 0.05), 2
        )
        state.stress = round(
            max(VitalThresholds.STRESS_FLOOR, state.stress + (self.rng.random() - 0.5) * 0.2), 2
        )

        tick = Tick(
            timestamp=int(time.time() * 1000),
            t=self._t,
            heart=state.heart,
            steps=state.steps,
            hydration=state.hydration,
            stress=state.stress
        )
        logger.debug(f"Tick {tick.t}: {tick.to_dict()}")
        return tick


class AnomalyKind(Enum):
    """Adverse events the injector can simulate."""

    STRESS_SPIKE = "stress"
    HYDRATION_DROP = "hydration"
    HEART_SPIKE = "heart"

    @property
    def metric(self) -> str:
        return self.value


class AnomalyInjector:
    """Perturb ticks to emulate rare spikes and drops."""

    KINDS = (AnomalyKind.STRESS_SPIKE, AnomalyKind.HYDRATION_DROP, AnomalyKind.HEART_SPIKE)

    def __init__(self, rng: Optional[RandomSource] = None, probability: float = 0.10):
        """Initialize the injector.

        Args:
            rng: Random source for trigger, kind and magnitude draws.
            probability: Chance per tick that an anomaly fires.
        """
        self.rng = rng or RandomSource()
        self.probability = probability

    def choose(self, enabled: bool = True) -> Optional[AnomalyKind]:
        """Decide whether this tick gets an anomaly and of which kind."""
        if not enabled or self.rng.random() >= self.probability:
            return None
        index = min(int(self.rng.random() * len(self.KINDS)), len(self.KINDS) - 1)
        return self.KINDS[index]

    def apply(self, tick: Tick, kind: AnomalyKind) -> Tick:
        """Apply a specific anomaly to a tick, returning the perturbed copy."""
        if kind is AnomalyKind.STRESS_SPIKE:
            return replace(tick, stress=tick.stress + self.rng.uniform(2, 8))
        if kind is AnomalyKind.HYDRATION_DROP:
            return replace(tick, hydration=max(0.0, tick.hydration - self.rng.uniform(0.5, 1.3)))
        if kind is AnomalyKind.HEART_SPIKE:
            return replace(tick, heart=tick.heart + self.rng.uniform(10, 40))
        raise ValueError(f"Unknown anomaly kind: {kind}")

    def maybe_inject(self, tick: Tick, enabled: bool) -> Tuple[Tick, Optional[AnomalyKind]]:
        """Possibly perturb a tick.

        Returns:
            Tuple of (tick, kind). The tick is unchanged and kind is None
            when nothing fired; otherwise kind names the perturbed metric.
        """
        kind = self.choose(enabled)
        if kind is None:
            return tick, None
        injected = self.apply(tick, kind)
        logger.info(
            f"Injected {kind.name.lower()} at tick {tick.t}: "
            f"{kind.metric} {tick.value(kind.metric)} -> {injected.value(kind.metric):.2f}"
        )
        return injected, kind


class SlidingWindowBuffer:
    """Fixed-capacity FIFO of the most recent samples of one metric."""

    def __init__(self, capacity: int = DEFAULT_BUFFER_CAPACITY):
        if capacity < 1:
            raise ValueError("Buffer capacity must be positive")
        self._samples = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    def push(self, sample: MetricSample) -> None:
        self._samples.append(sample)

    def to_sequence(self) -> Tuple[MetricSample, ...]:
        """Samples oldest to newest."""
        return tuple(self._samples)

    def values(self) -> np.ndarray:
        return np.array([sample.value for sample in self._samples], dtype=float)

    def latest(self) -> Optional[MetricSample]:
        return self._samples[-1] if self._samples else None

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[MetricSample]:
        return iter(tuple(self._samples))


class MetricBuffers:
    """One sliding window per tracked metric."""

    def __init__(
        self,
        metrics: Tuple[str, ...] = CANONICAL_METRICS,
        capacity: int = DEFAULT_BUFFER_CAPACITY
    ):
        self.metrics = tuple(metrics)
        self.capacity = capacity
        self._buffers = {metric: SlidingWindowBuffer(capacity) for metric in self.metrics}

    def __getitem__(self, metric: str) -> SlidingWindowBuffer:
        return self._buffers[metric]

    def __iter__(self) -> Iterator[str]:
        return iter(self.metrics)

    def push_tick(self, tick: Tick) -> None:
        """Append one sample per metric, stamped with the tick counter."""
        for metric in self.metrics:
            self._buffers[metric].push(MetricSample(timestamp=tick.t, value=tick.value(metric)))

    def clear(self) -> None:
        for buffer in self._buffers.values():
            buffer.clear()

    def to_dict(self) -> Dict[str, List[Dict[str, float]]]:
        """Buffered samples as ``{metric: [{"t": ..., "value": ...}]}``."""
        return {
            metric: [{"t": s.timestamp, "value": s.value} for s in self._buffers[metric]]
            for metric in self.metrics
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Buffered samples as a DataFrame indexed by tick counter."""
        columns = {
            metric: pd.Series(
                [s.value for s in self._buffers[metric]],
                index=[s.timestamp for s in self._buffers[metric]],
                dtype=float
            )
            for metric in self.metrics
        }
        frame = pd.DataFrame(columns)
        frame.index.name = "t"
        return frame
