"""Abstract base class for notification delivery."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


# Template names understood by every sender
TEMPLATE_SHARE_INVITATION = "share_invitation"
TEMPLATE_INVITATION_FORWARD = "invitation_forward"
TEMPLATE_OTP_CODE = "otp_code"
TEMPLATE_RSVP_CONFIRMATION = "rsvp_confirmation"

TEMPLATES = (
    TEMPLATE_SHARE_INVITATION,
    TEMPLATE_INVITATION_FORWARD,
    TEMPLATE_OTP_CODE,
    TEMPLATE_RSVP_CONFIRMATION,
)


class DeliveryFailed(Exception):
    """A notification could not be handed to the delivery channel."""

    pass


class NotificationSender(ABC):
    """
    Delivery collaborator for the access services.

    Senders only accept a message for delivery; retries and alerting are the
    channel's responsibility. Callers treat DeliveryFailed as non-fatal.
    """

    @abstractmethod
    def send(
        self,
        to: str,
        template: str,
        fields: Dict[str, Any],
        cc: Optional[List[str]] = None,
        bcc: Optional[List[str]] = None,
    ) -> None:
        """
        Accept a templated message for delivery.

        ``cc`` recipients are visible to the addressee; ``bcc`` recipients
        (event organisers) are not.

        Raises DeliveryFailed if the message could not be accepted.
        """
        pass
