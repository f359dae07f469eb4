"""Tick consumer: anomaly injection, buffering, emergency checks and export."""

import json
import time
import threading
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
import pandas as pd
from tqdm import tqdm

from ..alerts import EmergencyEvaluator, EmergencyVerdict, alert_event, emergency_event, notification_for
from ..data import (
    CANONICAL_METRICS, DEFAULT_BUFFER_CAPACITY, AnomalyInjector, AnomalyKind,
    MetricBuffers, StreamSimulator, Tick, VitalState
)
from ..models import RiskAssessment, run_multi_agent_analysis
from ..stats import ForecastResult, correlation_matrix, forecast, trend_direction
from ..utils import RandomSource

logger = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any]], None]


class MonitoringSession:
    """Owns the buffers for one viewer of the stream.

    ``handle_tick`` is meant to be registered as a simulator's ``on_tick``.
    For each tick it optionally injects an anomaly, checks the raw reading
    for emergencies, then appends the tick to the per-metric buffers.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_BUFFER_CAPACITY,
        anomalies: bool = False,
        injector: Optional[AnomalyInjector] = None,
        evaluator: Optional[EmergencyEvaluator] = None,
        on_emergency: Optional[EventHandler] = None,
        on_alert: Optional[EventHandler] = None,
        highlight_ttl: float = 2.0
    ):
        """Initialize the session.

        Args:
            capacity: Samples kept per metric.
            anomalies: Whether anomaly injection is enabled.
            injector: Anomaly injector, a default one if omitted.
            evaluator: Emergency evaluator, a default one if omitted.
            on_emergency: Receives the emergency event payload.
            on_alert: Receives the alert banner payload.
            highlight_ttl: Seconds a perturbed metric stays highlighted.
        """
        self.buffers = MetricBuffers(CANONICAL_METRICS, capacity)
        self.anomalies = anomalies
        self.injector = injector or AnomalyInjector()
        self.evaluator = evaluator or EmergencyEvaluator()
        self.on_emergency = on_emergency
        self.on_alert = on_alert
        self.highlight_ttl = highlight_ttl

        self.paused = False
        self.latest: Optional[Tick] = None
        self.last_verdict: Optional[EmergencyVerdict] = None
        self.emergency_count = 0
        self.anomaly_log: List[Dict[str, Any]] = []
        self._highlights: Dict[str, float] = {}
        self._lock = threading.Lock()

    def handle_tick(self, tick: Tick) -> Optional[Tick]:
        """Process one tick. Returns the stored tick, or None while paused."""
        if self.paused:
            return None

        tick, kind = self.injector.maybe_inject(tick, self.anomalies)
        verdict = self.evaluator.evaluate(tick)

        with self._lock:
            if kind is not None:
                self._record_anomaly(tick, kind)
            self.latest = tick
            self.last_verdict = verdict
            self.buffers.push_tick(tick)
            if verdict.is_emergency:
                self.emergency_count += 1

        if verdict.is_emergency:
            self._dispatch(verdict)
        return tick

    def _record_anomaly(self, tick: Tick, kind: AnomalyKind) -> None:
        self._highlights[kind.metric] = time.time()
        self.anomaly_log.append({"t": tick.t, "kind": kind.name.lower(), "metric": kind.metric})

    def _dispatch(self, verdict: EmergencyVerdict) -> None:
        if self.on_emergency is not None:
            self.on_emergency(emergency_event(verdict))
        notification = notification_for(verdict)
        if self.on_alert is not None and notification is not None:
            self.on_alert(alert_event(notification))

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def reset(self) -> None:
        """Clear all buffered history and highlights."""
        with self._lock:
            self.buffers.clear()
            self._highlights.clear()
            self.anomaly_log.clear()
            self.latest = None
            self.last_verdict = None
            self.emergency_count = 0

    def active_highlights(self, now: Optional[float] = None) -> List[str]:
        """Metrics perturbed within the last ``highlight_ttl`` seconds."""
        now = time.time() if now is None else now
        with self._lock:
            self._highlights = {
                metric: stamp for metric, stamp in self._highlights.items()
                if now - stamp < self.highlight_ttl
            }
            return sorted(self._highlights)

    def current_state(self) -> VitalState:
        with self._lock:
            return self.latest.to_state() if self.latest is not None else VitalState()

    def history(self) -> pd.DataFrame:
        with self._lock:
            return self.buffers.to_dataframe()

    def assess_risk(self, sleep_hours: Optional[float] = None) -> RiskAssessment:
        """Run the scoring agents against the latest reading."""
        return run_multi_agent_analysis(self.current_state(), sleep_hours=sleep_hours)

    def correlations(self, method: str = "pearson") -> pd.DataFrame:
        """Correlation matrix of the buffered metrics (needs two samples)."""
        frame = self.history()
        return correlation_matrix({metric: frame[metric].tolist() for metric in frame.columns}, method)

    def forecast_metric(
        self,
        metric: str,
        horizon: int = 7,
        rng: Optional[RandomSource] = None
    ) -> ForecastResult:
        """Forecast one metric from its buffered history."""
        with self._lock:
            values = self.buffers[metric].values()
        return forecast(values, horizon, rng)

    def export(self) -> Dict[str, Any]:
        with self._lock:
            return build_export(self.buffers, self.latest.to_state() if self.latest else VitalState())


def build_export(
    buffers: MetricBuffers,
    state: Union[VitalState, Dict[str, float]],
    limit: int = DEFAULT_BUFFER_CAPACITY
) -> Dict[str, Any]:
    """Build the export document.

    Returns:
        ``{"exportedAt": ISO-8601, "data": {metric: [{"t", "value"}]},
        "simulatorState": {...}}`` with at most ``limit`` entries per metric.
    """
    state = state if isinstance(state, dict) else state.to_dict()
    return {
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "data": {metric: samples[-limit:] for metric, samples in buffers.to_dict().items()},
        "simulatorState": dict(state),
    }


def export_to_file(path: Union[str, Path], payload: Dict[str, Any]) -> Path:
    """Write an export document as indented JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(payload, f, indent=2)
    logger.info(f"Export saved to {path}")
    return path


def run_session(
    config: Dict[str, Any],
    output_dir: Optional[Path] = None,
    random_seed: int = 42,
    progress: bool = True
) -> Dict[str, Any]:
    """Run a complete monitoring session with manual ticks.

    Args:
        config: Session configuration (see ``configs/default.yaml``).
        output_dir: Where to save the export and results, if given.
        random_seed: Seed for the shared random source.
        progress: Show a progress bar.

    Returns:
        Dictionary with the final state, risk assessment, forecasts and counts.
    """
    logger.info("Starting monitoring session")

    rng = RandomSource(random_seed)
    sim_config = config['simulator']

    session = MonitoringSession(
        capacity=config['buffer']['capacity'],
        anomalies=sim_config.get('anomalies', False),
        injector=AnomalyInjector(rng, sim_config.get('anomaly_probability', 0.1))
    )
    simulator = StreamSimulator(session.handle_tick, sim_config['interval_ms'], rng)

    n_ticks = config['session']['ticks']
    for _ in tqdm(range(n_ticks), desc="Ticks", disable=not progress):
        simulator.tick()

    logger.info(f"Processed {n_ticks} ticks, {session.emergency_count} emergencies, "
                f"{len(session.anomaly_log)} anomalies")

    risk = session.assess_risk(config['session'].get('sleep_hours'))
    logger.info(f"Risk level: {risk.risk_level.value} (score {risk.total_score})")

    horizon = config['forecast']['horizon']
    forecasts = {}
    trends = {}
    for metric in ('heart', 'hydration', 'stress'):
        values = session.buffers[metric].values()
        forecasts[metric] = forecast(
            values, horizon, rng,
            window=config['forecast'].get('ma_window', 3),
            alpha=config['forecast'].get('alpha', 0.3)
        ).to_dict()
        trends[metric] = trend_direction(values)

    results = {
        'ticks': n_ticks,
        'state': simulator.get_state().to_dict(),
        'risk': risk.to_dict(),
        'emergencies': session.emergency_count,
        'anomalies': list(session.anomaly_log),
        'forecasts': forecasts,
        'trends': trends,
    }

    if output_dir is not None:
        output_dir = Path(output_dir)
        export_to_file(output_dir / 'export.json', session.export())

        results_path = output_dir / 'results.json'
        with open(results_path, 'w') as f:
            json.dump(results, f, indent=2)
        logger.info(f"Results saved to {results_path}")

    return results
