"""
Care features on the dashboard: the senior SOS button, wellness readings and
reports for guardians.

Every call goes through the session machine's authorized() so a rejected
credential logs the user out like any other authenticated call.
"""

from typing import Any, List, Optional

from buddy.core.bus import EventBus
from buddy.core.errors import InvalidTransition, ValidationError
from buddy.core.events import EventType
from buddy.core.registry import ServiceRegistry
from buddy.core.service import BaseService
from buddy.events.care import SosRaisedEvent
from buddy.models import HealthReading, Stage
from buddy.onboarding.machine import OnboardingSessionMachine

DEFAULT_SOS_MESSAGE = "Emergency SOS activated"


class CareService(BaseService):

    PRODUCES_EVENTS = {
        EventType.SOS_RAISED: {
            'schema': SosRaisedEvent,
            'description': "An SOS alert was accepted by the backend"
        },
    }

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 machine: OnboardingSessionMachine,
                 name: Optional[str] = None,
                 config: Optional[Any] = None):
        super().__init__(event_bus, service_registry, name=name, config=config)
        self.machine = machine

    @property
    def _care(self):
        return self.machine.backend.care

    def _require_dashboard(self, action: str) -> None:
        if self.machine.stage is not Stage.DASHBOARD:
            raise InvalidTransition(self.machine.stage, action)

    async def raise_sos(self, message: str = DEFAULT_SOS_MESSAGE, location: Optional[str] = None) -> None:
        """
        Alert the emergency contact.

        Raises:
            SessionExpired: The backend rejected the credential
            StoreError: The alert could not be stored
        """
        self._require_dashboard("raise_sos")
        await self.machine.authorized(
            lambda token, user_id: self._care.raise_sos(token, user_id, message, location)
        )
        self.logger.warning("SOS alert sent", location=location)
        await self.publish(SosRaisedEvent(message=message, location=location))

    async def record_health(self, reading: HealthReading) -> None:
        self._require_dashboard("record_health")
        await self.machine.authorized(
            lambda token, user_id: self._care.record_health(token, user_id, reading)
        )

    async def health_history(self) -> List[HealthReading]:
        self._require_dashboard("health_history")
        return await self.machine.authorized(self._care.health_history)

    async def send_parent_report(self, report: str) -> None:
        """Send a free-text report to the guardian linked at registration."""
        self._require_dashboard("send_parent_report")
        if not report.strip():
            raise ValidationError("Report is empty", field="report")
        profile = self.machine.session.profile
        if profile is None or not profile.parent_or_family_email:
            raise ValidationError("No parent or family email on this account", field="parent_or_family_email")
        await self.machine.authorized(
            lambda token, user_id: self._care.send_parent_report(token, user_id, report)
        )
