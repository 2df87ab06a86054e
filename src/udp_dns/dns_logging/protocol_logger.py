"""
Protocol Event Logging

Structured events emitted by the session state machines: messages sent and
received, state transitions, DNS records shown to the user and messages a
state did not accept. Logging never influences state machine behavior.
"""

from enum import Enum
from typing import Any, Optional, Tuple, Union

from .logger import get_logger


def format_content(content: Any) -> Any:
    """Render message content for a log event"""
    if hasattr(content, "to_dict"):
        return content.to_dict()
    return content


def format_address(addr: Optional[Tuple[str, int]]) -> Optional[str]:
    if addr is None:
        return None
    return f"{addr[0]}:{addr[1]}"


def _state_name(state: Union[Enum, str, None]) -> Optional[str]:
    return getattr(state, "value", state)


class ProtocolLogger:
    """Protocol event logger bound to one component (client or server)."""

    def __init__(self, component: str):
        """Initialize protocol logger.

        Args:
            component: Component name, e.g. "client" or "server"
        """
        self.component = component
        self.logger = get_logger(f"udp_dns.{component}")

    def message_sent(self, message, addr: Tuple[str, int]) -> None:
        """Log an outbound message"""
        self.logger.info(
            "message_sent",
            component=self.component,
            msg_id=message.msg_id,
            msg_type=message.msg_type.value,
            content=format_content(message.content),
            peer=format_address(addr),
        )

    def message_received(self, message, addr: Tuple[str, int]) -> None:
        """Log an inbound message"""
        self.logger.info(
            "message_received",
            component=self.component,
            msg_id=message.msg_id,
            msg_type=message.msg_type.value,
            content=format_content(message.content),
            peer=format_address(addr),
        )

    def state_transition(self, old_state, new_state) -> None:
        """Log a state change"""
        self.logger.info(
            "state_transition",
            component=self.component,
            old_state=_state_name(old_state),
            new_state=_state_name(new_state),
        )

    def dns_record(self, record) -> None:
        """Show a DNS record"""
        if record is None:
            return

        self.logger.info(
            "dns_record",
            component=self.component,
            record_type=record.record_type,
            name=record.name,
            value=record.value,
            ttl=record.ttl,
            priority=record.priority,
        )

    def unexpected_message(self, error) -> None:
        """Report a message the current state does not accept"""
        self.logger.error(
            "unexpected_message",
            component=self.component,
            state=error.state,
            expected=[getattr(t, "value", t) for t in error.expected],
            received=getattr(error.received, "value", error.received),
        )
