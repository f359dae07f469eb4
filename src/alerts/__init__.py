"""Emergency evaluation and alert payloads."""

import time
import uuid
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..utils import VitalThresholds


logger = logging.getLogger(__name__)

EMERGENCY_EVENT = "vital_stream:emergency"
ALERT_EVENT = "vital_stream:alert"

# (metric, alert text), all checked on every evaluation
EMERGENCY_CHECKS = (
    ("heart", "Critical heart rate spike"),
    ("stress", "Extreme stress spike"),
    ("hydration", "Severe dehydration indicator"),
)


@dataclass(frozen=True)
class EmergencyVerdict:
    """Outcome of one emergency evaluation."""

    is_emergency: bool
    alerts: Tuple[str, ...]
    evaluated_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isEmergency": self.is_emergency,
            "alerts": list(self.alerts),
            "timestamp": self.evaluated_at,
        }


class EmergencyEvaluator:
    """Stateless threshold check over the latest raw reading."""

    def evaluate(self, state: Any) -> EmergencyVerdict:
        """Evaluate a reading.

        Args:
            state: ``VitalState``, ``Tick`` or mapping of metric readings.

        Returns:
            Verdict listing every crossed threshold in check order.
        """
        readings = state if isinstance(state, Mapping) else state.to_dict()

        alerts = [
            text for metric, text in EMERGENCY_CHECKS
            if VitalThresholds.is_emergency(metric, readings.get(metric))
        ]
        verdict = EmergencyVerdict(is_emergency=bool(alerts), alerts=tuple(alerts))

        if verdict.is_emergency:
            logger.warning(f"Emergency detected: {', '.join(alerts)}")
        return verdict


@dataclass(frozen=True)
class AlertNotification:
    """Transient banner shown by the dashboard."""

    title: str
    subtitle: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "title": self.title, "subtitle": self.subtitle}


def emergency_event(verdict: EmergencyVerdict) -> Dict[str, Any]:
    """Payload for the emergency-detected signal."""
    return {"type": EMERGENCY_EVENT, "detail": verdict.to_dict()}


def alert_event(notification: AlertNotification) -> Dict[str, Any]:
    """Payload for the alert/notification signal."""
    return {"type": ALERT_EVENT, "detail": notification.to_dict()}


def notification_for(verdict: EmergencyVerdict) -> Optional[AlertNotification]:
    """Banner summarising an emergency verdict, or None if there is none."""
    if not verdict.is_emergency:
        return None
    subtitle = verdict.alerts[0]
    if len(verdict.alerts) > 1:
        subtitle += f" (+{len(verdict.alerts) - 1} more)"
    return AlertNotification(title="Emergency detected", subtitle=subtitle)


def send_whatsapp_alert(contact: Mapping[str, str], message: str) -> None:
    # Stub: no messaging backend is wired in
    logger.info(f"WhatsApp alert sent to: {contact.get('phone')} {message!r}")


def send_sms_alert(contact: Mapping[str, str], message: str) -> None:
    # Stub: no messaging backend is wired in
    logger.info(f"SMS alert sent to: {contact.get('phone')} {message!r}")


def broadcast_emergency(contacts: Iterable[Mapping[str, str]], alerts: Iterable[str]) -> str:
    """Send the emergency message to every contact over both channels.

    Returns:
        The message that was sent.
    """
    message = "EMERGENCY ALERT\nIssues detected:\n- " + "\n- ".join(alerts)
    for contact in contacts:
        send_whatsapp_alert(contact, message)
        send_sms_alert(contact, message)
    return message
