from typing import Awaitable, Callable

import services.logger as log
from services.config_schema import GatewayRule
from services.message import CanonicalMessage

l = log.get_logger()

Sender = Callable[[dict, CanonicalMessage], Awaitable[object]]


class Gateway:
    """
    Fans canonical messages out between driver instances.

    Drivers register a sender callback via ``register_sender`` and hand every
    normalized message to ``on_message``.  Each configured rule connects one
    channel per instance; a message arriving on a rule's channel is sent to
    every other member of that rule.  Delivery is at-least-once: nothing here
    deduplicates across rules.
    """

    def __init__(self):
        self._rules: list[GatewayRule] = []
        self._senders: dict[str, Sender] = {}
        self._sensitive: frozenset[str] = frozenset()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def load_rules(self, rules: list[GatewayRule]):
        self._rules = list(rules)
        l.info(f"Loaded {len(self._rules)} gateway rule(s)")

    def load_sensitive_values(self, values: set[str]):
        self._sensitive = frozenset(values)
        l.info(f"Loaded {len(self._sensitive)} sensitive value(s) for leak detection")

    def register_sender(self, instance_id: str, send_func: Sender):
        self._senders[instance_id] = send_func
        l.debug(f"Registered sender for instance: {instance_id}")

    # ------------------------------------------------------------------
    # Message routing
    # ------------------------------------------------------------------

    @staticmethod
    def _channel_matches(msg: CanonicalMessage, channel: dict) -> bool:
        if "channel" in channel:
            return channel["channel"] == msg.channel
        if "channel_id" in channel:
            return "ID:" + channel["channel_id"] == msg.channel
        return False

    def _is_sensitive(self, text: str) -> bool:
        return bool(self._sensitive) and any(s in text for s in self._sensitive)

    async def on_message(self, msg: CanonicalMessage) -> int:
        """Dispatch *msg*; return the number of successful sends."""
        sent = 0
        for rule in self._rules:
            source = rule.channels.get(msg.account)
            if source is None or not self._channel_matches(msg, source):
                continue

            for target_id, target_channel in rule.channels.items():
                # Skip echo back to the exact same channel
                if target_id == msg.account and target_channel == source:
                    continue

                if self._is_sensitive(msg.text):
                    l.warning(
                        f"Message to '{target_id}' blocked: text contains a sensitive "
                        f"value from config (token/secret/webhook). Possible credential leak."
                    )
                    continue

                sender = self._senders.get(target_id)
                if sender is None:
                    l.warning(f"No sender registered for instance '{target_id}'")
                    continue

                try:
                    await sender(dict(target_channel), msg)
                    sent += 1
                except Exception as e:
                    l.error(f"Failed to send to '{target_id}': {e}")
        return sent


# Shared singleton used by all drivers
gateway = Gateway()
