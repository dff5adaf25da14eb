"""
Commitment Registry Error Handling Framework.

Provides structured exception classes for the tree engine and the registry
boundary. All exceptions carry a severity level and can be rendered as
audit events for external observers.
"""

from enum import IntEnum
from typing import Optional, Dict, Any
from datetime import datetime, timezone
import traceback


class Severity(IntEnum):
    """Audit severity levels (1-10 scale)."""
    DEBUG = 1
    INFO = 2
    NOTICE = 3
    WARNING = 4
    ERROR = 5
    CRITICAL = 6
    ALERT = 7
    EMERGENCY = 8
    SECURITY_VIOLATION = 9
    BREACH_DETECTED = 10


class RegistryError(Exception):
    """Base exception for all Commitment Registry errors.

    Attributes:
        message: Human-readable error message
        severity: Audit severity level (1-10)
        action: Dot-notation action that failed (e.g., 'tree.update')
        outcome: Result of the action ('failure', 'rejected', 'denied')
        actor: Actor information dict (type, id)
        metadata: Additional context for debugging/auditing
        timestamp: When the error occurred
    """

    severity: Severity = Severity.ERROR
    action: str = "registry.error"
    outcome: str = "failure"

    def __init__(
        self,
        message: str,
        actor: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.actor = actor or {"type": "system", "id": "unknown"}
        self.metadata = metadata or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()

        if cause:
            self.metadata["cause_type"] = type(cause).__name__
            self.metadata["cause_message"] = str(cause)
            self.metadata["cause_traceback"] = traceback.format_exception(
                type(cause), cause, cause.__traceback__
            )

    def to_audit_event(self, source_host: str = "localhost") -> Dict[str, Any]:
        """Convert exception to an audit event dict."""
        return {
            "timestamp": self.timestamp,
            "source": {
                "product": "commitment-registry",
                "host": source_host,
                "version": "0.1.0"
            },
            "action": self.action,
            "outcome": self.outcome,
            "severity": int(self.severity),
            "actor": self.actor,
            "metadata": {
                "error_type": type(self).__name__,
                "message": self.message,
                **self.metadata
            }
        }


# ============================================================================
# Input Errors
# ============================================================================

class InputError(RegistryError):
    """Base class for malformed input rejected before any state change."""
    severity = Severity.WARNING
    action = "input.validation"
    outcome = "rejected"


class InvalidCommitment(InputError):
    """Zero or otherwise disallowed commitment value."""
    action = "input.commitment"

    def __init__(self, message: str, commitment: int = None, **kwargs):
        super().__init__(message, **kwargs)
        if commitment is not None:
            self.metadata["commitment"] = str(commitment)


class EmptyBatch(InputError):
    """Batch insert called with no commitments."""
    action = "input.batch"


class InvalidIndex(InputError):
    """Index not assigned yet, reserved, or outside the tree."""
    action = "input.index"

    def __init__(self, message: str, index: int = None, limit: int = None, **kwargs):
        super().__init__(message, **kwargs)
        if index is not None:
            self.metadata["index"] = index
        if limit is not None:
            self.metadata["limit"] = limit


class WrongProofLength(InputError):
    """Sibling path length differs from the tree depth."""
    action = "input.proof_length"

    def __init__(self, message: str, expected: int = None, actual: int = None, **kwargs):
        super().__init__(message, **kwargs)
        if expected is not None:
            self.metadata["expected_length"] = expected
        if actual is not None:
            self.metadata["actual_length"] = actual


class ValueOutOfField(InputError):
    """A leaf, sibling or root is not an element of the scalar field."""
    action = "input.field_element"

    def __init__(self, message: str, value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        if value is not None:
            self.metadata["value"] = str(value)


class InvalidLevel(InputError):
    """Zero-value level outside [0, depth]."""
    action = "input.level"


class InvalidValidityWindow(InputError):
    """Root validity window must be a non-negative integer."""
    action = "input.validity_window"


# ============================================================================
# Tree State Errors
# ============================================================================

class TreeError(RegistryError):
    """Base class for tree engine failures."""
    severity = Severity.ERROR
    action = "tree.operation"


class TreeFull(TreeError):
    """Insertion would exceed the 2**depth capacity."""
    action = "tree.capacity"

    def __init__(self, message: str, capacity: int = None, **kwargs):
        super().__init__(message, **kwargs)
        if capacity is not None:
            self.metadata["capacity"] = capacity


class ProofMismatch(TreeError):
    """Path replay did not reproduce the expected root.

    Raised by update/remove when the supplied leaf and siblings do not
    authenticate against the current root. Indistinguishable from tampering.
    """
    severity = Severity.SECURITY_VIOLATION
    action = "tree.authenticate"
    outcome = "denied"

    def __init__(self, message: str, expected_root: int = None,
                 computed_root: int = None, **kwargs):
        super().__init__(message, **kwargs)
        if expected_root is not None:
            self.metadata["expected_root"] = hex(expected_root)
        if computed_root is not None:
            self.metadata["computed_root"] = hex(computed_root)


# ============================================================================
# Access Control Errors
# ============================================================================

class UnauthorizedCaller(RegistryError):
    """Caller lacks the capability for a mutating operation."""
    severity = Severity.SECURITY_VIOLATION
    action = "access.authorize"
    outcome = "denied"

    def __init__(self, message: str, caller: str = None, **kwargs):
        super().__init__(message, **kwargs)
        if caller is not None:
            self.metadata["caller"] = caller


# ============================================================================
# Storage Errors
# ============================================================================

class StoreError(RegistryError):
    """Base class for persistence failures."""
    severity = Severity.ERROR
    action = "store.operation"


class SchemaVersionError(StoreError):
    """Persisted schema version is not supported."""
    severity = Severity.WARNING
    action = "store.schema_version"

    def __init__(self, message: str, found_version: int = None,
                 supported_version: int = None, **kwargs):
        super().__init__(message, **kwargs)
        if found_version is not None:
            self.metadata["found_version"] = found_version
        if supported_version is not None:
            self.metadata["supported_version"] = supported_version


class StateNotFoundError(StoreError):
    """No registry snapshot has been saved yet."""
    severity = Severity.WARNING
    action = "store.state_not_found"


# ============================================================================
# Integrity Errors
# ============================================================================

class CheckpointSignatureError(RegistryError):
    """Signed root checkpoint failed verification."""
    severity = Severity.BREACH_DETECTED
    action = "integrity.root_signature"

    def __init__(self, message: str, epoch: int = None, **kwargs):
        super().__init__(message, **kwargs)
        if epoch is not None:
            self.metadata["epoch"] = epoch


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(RegistryError):
    """Invalid or missing configuration."""
    severity = Severity.ERROR
    action = "config.validation"
