"""WhatsApp message models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class NormalizedInbound:
    """Evolution payload reduced to what the dialog needs.

    PII: `remote_jid`, `user_id` and `text` identify and quote the customer.
    Never log them; log `mask_user_id(user_id)` instead.
    """

    message_id: str
    received_at: datetime
    kind: str
    remote_jid: str
    text: str | None
    from_me: bool = False

    @property
    def is_group(self) -> bool:
        return self.remote_jid.endswith("@g.us")

    @property
    def is_broadcast(self) -> bool:
        return self.remote_jid.endswith("@broadcast")

    @property
    def user_id(self) -> str:
        """Sender phone number (the jid without its @domain suffix)."""
        return self.remote_jid.split("@", 1)[0]

    @property
    def should_ignore(self) -> bool:
        """Own messages, groups and broadcasts never reach the dialog."""
        return self.from_me or self.is_group or self.is_broadcast
