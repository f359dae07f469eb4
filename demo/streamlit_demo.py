"""Streamlit dashboard for the vital stream monitor."""

import json
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

import streamlit as st
import plotly.graph_objects as go
from plotly.subplots import make_subplots

# Make the repository root importable
sys.path.append(str(Path(__file__).resolve().parent.parent))

from src.data import AnomalyInjector, CANONICAL_METRICS, StreamSimulator
from src.monitor import MonitoringSession
from src.stats import (
    HYDRATION_HISTORICAL, SLEEP_HISTORICAL, STRESS_HISTORICAL,
    ForecastResult, forecast
)
from src.utils import RandomSource, format_metric_name


st.set_page_config(
    page_title="Vital Stream Monitor",
    page_icon="🫀",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        color: #1f77b4;
        text-align: center;
        margin-bottom: 2rem;
    }
    .disclaimer {
        background-color: #ffebee;
        border-left: 5px solid #f44336;
        padding: 1rem;
        margin: 1rem 0;
        border-radius: 5px;
    }
    .anomaly-alert {
        background-color: #fff3cd;
        border: 1px solid #ffeaa7;
        padding: 1rem;
        border-radius: 5px;
        margin: 1rem 0;
    }
</style>
""", unsafe_allow_html=True)

st.markdown("""
<div class="disclaimer">
    <h4>⚠️ IMPORTANT DISCLAIMER</h4>
    <p><strong>All readings are simulated. This dashboard is NOT intended for clinical use.</strong></p>
</div>
""", unsafe_allow_html=True)

st.markdown('<h1 class="main-header">🫀 Vital Stream Monitor</h1>', unsafe_allow_html=True)

COLORS = {"heart": "red", "steps": "green", "hydration": "blue", "stress": "purple"}
MIN_REFRESH_S = 0.5


def refresh_interval(simulator: StreamSimulator) -> Optional[float]:
    """Seconds to wait before redrawing, or None when the timer is stopped."""
    if not simulator.is_running:
        return None
    return max(simulator.interval_ms / 1000.0, MIN_REFRESH_S)


def init_state() -> None:
    """Create the simulator and session once per browser session."""
    if 'session' in st.session_state:
        return
    rng = RandomSource(42)
    events: List[Dict] = []
    session = MonitoringSession(
        injector=AnomalyInjector(rng),
        on_emergency=events.append,
        on_alert=events.append
    )
    st.session_state.rng = rng
    st.session_state.events = events
    st.session_state.session = session
    st.session_state.simulator = StreamSimulator(session.handle_tick, 1000, rng)


def create_stream_plot(session: MonitoringSession) -> go.Figure:
    """Plot the buffered window of every metric."""
    frame = session.history()
    highlighted = set(session.active_highlights())
    fig = make_subplots(
        rows=len(CANONICAL_METRICS), cols=1,
        subplot_titles=[
            format_metric_name(m) + (" ⚠️" if m in highlighted else "") for m in CANONICAL_METRICS
        ],
        vertical_spacing=0.08
    )

    for i, metric in enumerate(CANONICAL_METRICS):
        fig.add_trace(
            go.Scatter(
                x=frame.index,
                y=frame[metric],
                mode='lines',
                name=format_metric_name(metric),
                line=dict(color=COLORS[metric], width=2)
            ),
            row=i + 1, col=1
        )

    fig.update_layout(height=800, showlegend=False)
    return fig


def create_forecast_plot(history, result: ForecastResult, title: str) -> go.Figure:
    """Plot history followed by the forecast and its confidence band."""
    n = len(history)
    days = list(range(n, n + len(result.forecast)))

    fig = go.Figure()
    fig.add_trace(go.Scatter(x=list(range(n)), y=list(history), mode='lines+markers', name='History'))
    fig.add_trace(go.Scatter(
        x=days + days[::-1],
        y=result.upper_bound + result.lower_bound[::-1],
        fill='toself',
        fillcolor='rgba(31, 119, 180, 0.2)',
        line=dict(color='rgba(255, 255, 255, 0)'),
        name='95% band'
    ))
    fig.add_trace(go.Scatter(x=days, y=result.forecast, mode='lines+markers', name='Forecast'))
    fig.update_layout(title=f"{title} (accuracy {result.accuracy:.0%})", height=350)
    return fig


def main():
    """Main dashboard function."""
    init_state()
    session: MonitoringSession = st.session_state.session
    simulator: StreamSimulator = st.session_state.simulator

    # Sidebar
    st.sidebar.title("Simulation")

    speed = st.sidebar.select_slider("Tick interval (ms)", [250, 500, 1000, 2000], value=simulator.interval_ms)
    if speed != simulator.interval_ms:
        simulator.set_interval(speed)

    session.anomalies = st.sidebar.checkbox("Simulate anomalies", value=session.anomalies)

    col1, col2 = st.sidebar.columns(2)
    with col1:
        if st.button("Stop" if simulator.is_running else "Start"):
            if simulator.is_running:
                simulator.stop()
            else:
                simulator.start()
    with col2:
        if st.button("Step 10"):
            for _ in range(10):
                simulator.tick()

    if st.sidebar.button("Pause" if not session.paused else "Resume"):
        if session.paused:
            session.resume()
        else:
            session.pause()

    if st.sidebar.button("Reset"):
        session.reset()
        st.session_state.events.clear()

    sleep_hours = st.sidebar.slider("Last night's sleep (hours)", 0.0, 12.0, 7.5, 0.5)

    st.sidebar.download_button(
        "Export JSON",
        data=json.dumps(session.export(), indent=2),
        file_name="vital-stream-export.json",
        mime="application/json"
    )

    if session.latest is None:
        st.info("Start the simulator or step it from the sidebar to begin.")
    else:
        render_dashboard(session, sleep_hours)

    # Redraw on the timer's cadence while it runs
    delay = refresh_interval(simulator)
    if delay is not None:
        time.sleep(delay)
        st.rerun()


def render_dashboard(session: MonitoringSession, sleep_hours: float) -> None:
    """Draw metrics, risk, correlations, forecasts and recent events."""
    # Live metrics
    st.subheader("📊 Live Metrics")
    state = session.current_state()
    columns = st.columns(len(CANONICAL_METRICS))
    for column, metric in zip(columns, CANONICAL_METRICS):
        with column:
            st.metric(format_metric_name(metric), f"{getattr(state, metric):.2f}")

    verdict = session.last_verdict
    if verdict is not None and verdict.is_emergency:
        st.markdown(
            f'<div class="anomaly-alert">🚨 {"; ".join(verdict.alerts)}</div>',
            unsafe_allow_html=True
        )

    st.plotly_chart(create_stream_plot(session), use_container_width=True)

    # Risk
    st.subheader("🩺 Risk Assessment")
    risk = session.assess_risk(sleep_hours)
    col1, col2 = st.columns([1, 2])
    with col1:
        st.metric("Risk Level", risk.risk_level.value)
        st.metric("Total Score", f"{risk.total_score:.1f}")
    with col2:
        for result in risk.agent_results:
            st.write(f"**{result.agent_name}** ({result.score}): {result.reasons[0]}")

    # Correlations
    if len(session.history()) >= 2:
        st.subheader("🔗 Correlations")
        method = st.radio("Method", ["pearson", "spearman"], horizontal=True)
        st.dataframe(session.correlations(method).round(2))

    # Forecasts
    st.subheader("📈 7-Day Forecasts")
    rng = st.session_state.rng
    col1, col2, col3 = st.columns(3)
    for column, (title, history) in zip(
        (col1, col2, col3),
        (("Sleep", SLEEP_HISTORICAL), ("Hydration", HYDRATION_HISTORICAL), ("Stress", STRESS_HISTORICAL))
    ):
        with column:
            st.plotly_chart(create_forecast_plot(history, forecast(history, 7, rng), title), use_container_width=True)

    if st.session_state.events:
        st.subheader("🔔 Recent Events")
        for event in st.session_state.events[-5:][::-1]:
            st.json(event)


if __name__ == "__main__":
    main()
