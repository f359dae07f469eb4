"""Rule-based scoring agents and risk aggregation."""

import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..utils import parse_number


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreResult:
    """Output of one agent for one reading."""

    agent_name: str
    score: float
    reasons: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"agent": self.agent_name, "score": self.score, "reasons": list(self.reasons)}


class ScoringAgent:
    """Maps one metric reading to a severity score.

    Subclasses declare ``bands`` as ``(comparison, threshold, score, reason)``
    tuples checked in order, and a ``fallback`` ``(score, reason)`` used
    when no band matches.
    """

    name: str = "ScoringAgent"
    metric: str = ""
    bands: Sequence[Tuple[str, float, float, str]] = ()
    fallback: Tuple[float, str] = (0.5, "Stable")

    def score(self, reading: Any) -> ScoreResult:
        """Score a reading; missing or unparsable readings score as stable."""
        value = parse_number(reading)
        if value is None:
            score, reason = self.fallback
            return ScoreResult(self.name, score, (reason,))

        for comparison, threshold, score, reason in self.bands:
            if comparison == ">" and value > threshold:
                return ScoreResult(self.name, score, (reason,))
            if comparison == "<" and value < threshold:
                return ScoreResult(self.name, score, (reason,))

        score, reason = self.fallback
        return ScoreResult(self.name, score, (reason,))

    def __call__(self, reading: Any) -> ScoreResult:
        return self.score(reading)


class HeartAgent(ScoringAgent):
    """Heart-rate bands."""

    name = "HeartAgent"
    metric = "heart"
    bands = (
        (">", 150, 3, "High heart rate spike detected"),
        (">", 120, 2, "Elevated heart rate"),
        ("<", 50, 2, "Possible bradycardia pattern"),
    )
    fallback = (0.5, "Heart stable")


class StressAgent(ScoringAgent):
    """Stress-level bands."""

    name = "StressAgent"
    metric = "stress"
    bands = (
        (">", 8, 3, "Critical stress spike"),
        (">", 6, 2, "High stress pattern"),
    )
    fallback = (0.5, "Stress stable")


class SleepAgent(ScoringAgent):
    """Sleep-duration bands."""

    name = "SleepAgent"
    metric = "sleep"
    bands = (
        ("<", 4, 3, "Severe sleep deprivation"),
        ("<", 6, 2, "Low sleep duration"),
    )
    fallback = (0.5, "Sleep looks healthy")


def create_agent(agent_name: str) -> ScoringAgent:
    """Create a scoring agent by name.

    Args:
        agent_name: One of 'heart', 'stress', 'sleep'.

    Returns:
        Agent instance.

    Raises:
        ValueError: If agent name is not recognized.
    """
    agents = {
        'heart': HeartAgent,
        'stress': StressAgent,
        'sleep': SleepAgent,
    }

    if agent_name not in agents:
        raise ValueError(f"Unknown agent: {agent_name}. Available agents: {list(agents.keys())}")

    return agents[agent_name]()


def default_agents() -> List[ScoringAgent]:
    return [create_agent(name) for name in ('heart', 'stress', 'sleep')]


class RiskLevel(str, Enum):
    """Discrete composite risk levels."""

    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    CRITICAL = "Critical"


@dataclass(frozen=True)
class RiskAssessment:
    """Aggregated result of a set of scoring agents."""

    agent_results: Tuple[ScoreResult, ...]
    total_score: float
    risk_level: RiskLevel
    evaluated_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agents": [result.to_dict() for result in self.agent_results],
            "totalScore": self.total_score,
            "riskLevel": self.risk_level.value,
            "timestamp": self.evaluated_at,
        }


class RiskAggregator:
    """Sum agent scores and map the total to a risk level.

    The thresholds are calibrated for the heart, stress and sleep agents;
    the aggregator itself sums whatever results it receives.
    """

    # (exclusive lower bound, level), checked high to low
    LEVELS = (
        (7, RiskLevel.CRITICAL),
        (4, RiskLevel.HIGH),
        (2, RiskLevel.MODERATE),
    )

    def aggregate(self, agent_results: Sequence[ScoreResult]) -> RiskAssessment:
        total_score = float(sum(result.score for result in agent_results))

        risk_level = RiskLevel.LOW
        for threshold, level in self.LEVELS:
            if total_score > threshold:
                risk_level = level
                break

        logger.debug(f"Aggregated {len(agent_results)} agents: total={total_score}, level={risk_level.value}")
        return RiskAssessment(
            agent_results=tuple(agent_results),
            total_score=total_score,
            risk_level=risk_level
        )


def run_multi_agent_analysis(
    state: Any,
    sleep_hours: Optional[float] = None,
    agents: Optional[Sequence[ScoringAgent]] = None
) -> RiskAssessment:
    """Score a snapshot of current metrics and aggregate the results.

    Args:
        state: ``VitalState``, ``Tick`` or mapping holding metric readings.
        sleep_hours: Sleep reading, used when the state has no ``sleep``.
        agents: Agents to run, the heart/stress/sleep trio by default.

    Returns:
        Risk assessment.
    """
    readings = state if isinstance(state, Mapping) else state.to_dict()
    readings = dict(readings)
    if sleep_hours is not None and "sleep" not in readings:
        readings["sleep"] = sleep_hours

    agents = agents if agents is not None else default_agents()
    results = [agent.score(readings.get(agent.metric)) for agent in agents]
    return RiskAggregator().aggregate(results)
