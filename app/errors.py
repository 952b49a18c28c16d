"""
Typed errors raised by the reconciliation core.

Each error carries the HTTP status it maps to at the channel boundary.
"""


class ReconciliationError(Exception):
    """Base class for every error the core reports to a caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReconciliationError):
    """Malformed input."""

    status_code = 400


class InvalidSignature(ReconciliationError):
    """Webhook authentication failed. The event is never persisted."""

    status_code = 400


class PermissionDenied(ReconciliationError):
    status_code = 403


class NotFound(ReconciliationError):
    """Unknown order, payment or event."""

    status_code = 404


class ConflictError(ReconciliationError):
    """A precondition of the state machine does not hold. Needs a human."""

    status_code = 409


class TerminalStateConflict(ConflictError):
    """Attempt to move a settled payment to a different terminal state."""


class StaleTransition(ConflictError):
    """The row changed between the read a transition was computed from and the write."""


class MaintenanceMode(ReconciliationError):
    status_code = 503


class TransientStoreError(ReconciliationError):
    """Infrastructure failure. Safe for the external caller to retry."""

    status_code = 500


class SecretUnavailable(ReconciliationError):
    """A stored secret could not be decrypted with the configured master keys."""

    status_code = 500


class GatewayUnavailable(ReconciliationError):
    """The payment gateway rejected or failed an outbound call."""

    status_code = 502
