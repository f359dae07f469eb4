#!/usr/bin/env python3
"""Simple example script demonstrating the vital stream monitor."""

import sys
from pathlib import Path

# Make the repository root importable
sys.path.append(str(Path(__file__).resolve().parent))

from src.data import AnomalyInjector, StreamSimulator
from src.monitor import MonitoringSession
from src.stats import (
    SLEEP_HISTORICAL, STRESS_HISTORICAL, correlation_insight,
    pearson, predict_sleep_trend, spearman
)
from src.utils import RandomSource, format_metric_name


def main():
    """Main example function."""
    print("Vital Stream Monitor - Example")
    print("=" * 50)

    print("DISCLAIMER: simulated data for demonstration only, NOT for clinical use!")
    print()

    rng = RandomSource(42)
    emergencies = []

    session = MonitoringSession(
        anomalies=True,
        injector=AnomalyInjector(rng, probability=0.1),
        on_emergency=emergencies.append
    )
    simulator = StreamSimulator(session.handle_tick, interval_ms=1000, rng=rng)

    print("Stepping 90 ticks with anomaly injection...")
    for _ in range(90):
        simulator.tick()

    history = session.history()
    print(f"Buffered samples per metric: {len(history)} (capacity {session.buffers.capacity})")
    print(f"Anomalies injected: {len(session.anomaly_log)}")
    print(f"Emergency events: {len(emergencies)}")
    for event in emergencies[:3]:
        print(f"  t={event['detail']['timestamp']}: {', '.join(event['detail']['alerts'])}")
    print()

    state = session.current_state()
    print("Latest reading:")
    for metric, value in state.to_dict().items():
        print(f"  {format_metric_name(metric)}: {value}")
    print()

    risk = session.assess_risk(sleep_hours=5.5)
    print(f"Risk level: {risk.risk_level.value} (score {risk.total_score})")
    for result in risk.agent_results:
        print(f"  {result.agent_name}: {result.score} - {result.reasons[0]}")
    print()

    print("Correlations over buffered history:")
    matrix = session.correlations()
    print(matrix.round(2).to_string())
    print()

    r = pearson(SLEEP_HISTORICAL, STRESS_HISTORICAL)
    rho = spearman(SLEEP_HISTORICAL, STRESS_HISTORICAL)
    print(f"Sleep vs stress history: pearson={r:.2f}, spearman={rho:.2f}")
    print(f"  {correlation_insight('Sleep', 'Stress', r)}")
    print()

    result = predict_sleep_trend(rng=rng)
    print(f"7-day sleep forecast (accuracy {result.accuracy:.0%}):")
    for day, (point, low, high) in enumerate(
        zip(result.forecast, result.lower_bound, result.upper_bound), start=1
    ):
        print(f"  Day {day}: {point:.2f} [{low:.2f}, {high:.2f}]")
    print()

    print("Example completed successfully!")
    print()
    print("Next steps:")
    print("1. Run 'python scripts/simulate.py' for a full session with export")
    print("2. Run 'streamlit run demo/streamlit_demo.py' for the live dashboard")


if __name__ == "__main__":
    main()
