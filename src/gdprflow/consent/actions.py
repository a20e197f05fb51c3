"""Consent-dependent toggles.

After a consent decision is recorded, subsystems that depend on it (analytics
tracking, marketing communications, personalization, non-essential cookies)
are told to switch on or off. Toggles are fire-and-forget: a failing
subscriber is logged and never undoes or blocks the recorded decision.
"""

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, Dict, List
from uuid import UUID

from ..models.consent_record import ConsentPurpose

logger = logging.getLogger(__name__)

# Subscriber signature: (user_id, tenant_id, enabled)
ToggleHandler = Callable[[UUID, UUID, bool], None]

TOGGLED_FEATURES: Dict[ConsentPurpose, str] = {
    ConsentPurpose.ANALYTICS: "analytics tracking",
    ConsentPurpose.MARKETING: "marketing communications",
    ConsentPurpose.PERSONALIZATION: "personalization",
    ConsentPurpose.COOKIES: "non-essential cookies",
}


class ConsentActionDispatcher:
    """Routes consent changes to the subscribers of each purpose."""

    def __init__(self):
        self._handlers: DefaultDict[ConsentPurpose, List[ToggleHandler]] = defaultdict(list)

    def register(self, purpose: ConsentPurpose, handler: ToggleHandler) -> None:
        self._handlers[ConsentPurpose(purpose)].append(handler)

    def dispatch(self, user_id: UUID, tenant_id: UUID, purpose: ConsentPurpose, granted: bool) -> None:
        purpose = ConsentPurpose(purpose)
        feature = TOGGLED_FEATURES.get(purpose)
        if feature is None:
            return

        logger.info(
            f"{'Enabling' if granted else 'Disabling'} {feature} for user {user_id} in tenant {tenant_id}",
            extra={"user_id": user_id, "tenant_id": tenant_id},
        )
        for handler in self._handlers.get(purpose, []):
            try:
                handler(user_id, tenant_id, granted)
            except Exception:
                logger.error(
                    f"Consent toggle for {feature} failed",
                    exc_info=True,
                    extra={"user_id": user_id, "tenant_id": tenant_id},
                )
