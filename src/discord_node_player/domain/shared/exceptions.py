"""Base exception classes for domain-level errors."""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class ConfigurationError(DomainError):
    """Raised when options are inconsistent with each other."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR")


class BusinessRuleViolationError(DomainError):
    """Raised when a business rule is violated."""

    def __init__(self, rule: str, message: str | None = None) -> None:
        msg = message or f"Business rule violated: {rule}"
        super().__init__(msg, code="BUSINESS_RULE_VIOLATION")
        self.rule = rule


class InvalidOperationError(DomainError):
    """Raised when an operation is invalid in the current state."""

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        msg = message or f"Cannot perform '{operation}' in state '{current_state}'"
        super().__init__(msg, code="INVALID_OPERATION")
        self.operation = operation
        self.current_state = current_state


# === Node errors ===


class NodeError(DomainError):
    """Base class for errors raised by a node connection."""

    def __init__(self, message: str, node_id: int | None = None, code: str | None = None) -> None:
        super().__init__(message, code=code)
        self.node_id = node_id


class NodeConnectionError(NodeError):
    """Raised when the WebSocket handshake fails, times out or a write fails."""

    def __init__(self, message: str, node_id: int | None = None) -> None:
        super().__init__(message, node_id=node_id, code="NODE_CONNECTION_ERROR")


class NodeNotConnectedError(NodeError):
    """Raised when sending on a node that is not connected."""

    def __init__(self, node_id: int | None = None, message: str | None = None) -> None:
        msg = message or "Cannot send payloads before a connection is established"
        super().__init__(msg, node_id=node_id, code="NODE_NOT_CONNECTED")


class NodeRequestError(NodeError):
    """Raised when a REST request to a node fails at the transport level."""

    def __init__(self, message: str, node_id: int | None = None, code: str | None = None) -> None:
        super().__init__(message, node_id=node_id, code=code or "NODE_REQUEST_ERROR")


class NodeRequestTimeoutError(NodeRequestError):
    """Raised when a REST request to a node exceeds the request timeout."""

    def __init__(self, node_id: int | None = None, message: str | None = None) -> None:
        super().__init__(
            message or "408 Timed out on request", node_id=node_id, code="NODE_REQUEST_TIMEOUT"
        )


class ProtocolError(NodeError):
    """Describes an unexpected or malformed inbound frame.

    Published on the event bus; never raised to callers.
    """

    def __init__(self, message: str, node_id: int | None = None) -> None:
        super().__init__(message, node_id=node_id, code="PROTOCOL_ERROR")


class NoAvailableNodesError(DomainError):
    """Raised when no connected node can take the work."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "No available nodes", code="NO_AVAILABLE_NODES")


# === Player / track errors ===


class PlayerConnectError(DomainError):
    """Raised when a player fails to join its voice channel."""

    def __init__(self, guild_id: int, message: str) -> None:
        super().__init__(message, code="PLAYER_CONNECT_ERROR")
        self.guild_id = guild_id


class InvalidTrackError(DomainError):
    """Raised when a queue entry does not carry a playable track handle."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Invalid track", code="INVALID_TRACK")


class NoResultsError(DomainError):
    """Raised when a search yields nothing usable."""

    def __init__(self, query: str, message: str | None = None) -> None:
        super().__init__(message or "No results found", code="NO_RESULTS")
        self.query = query


# === Secondary catalog errors ===


class CatalogRequestError(DomainError):
    """Raised when a secondary catalog lookup fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, code="CATALOG_REQUEST_ERROR")
        self.status_code = status_code


class CatalogAuthError(CatalogRequestError):
    """Raised when the client-credentials grant is rejected."""

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message or "Invalid Spotify authentication", status_code=status_code)
        self.code = "CATALOG_AUTH_ERROR"
