"""
Shared Domain Kernel

Exceptions, constrained types and the event bus used by every layer.
"""

from discord_node_player.domain.shared.events import DomainEvent, EventBus
from discord_node_player.domain.shared.exceptions import (
    BusinessRuleViolationError,
    ConfigurationError,
    DomainError,
    InvalidOperationError,
    NodeError,
    ValidationError,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "DomainError",
    "ValidationError",
    "ConfigurationError",
    "BusinessRuleViolationError",
    "InvalidOperationError",
    "NodeError",
]
