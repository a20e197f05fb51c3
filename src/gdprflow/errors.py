"""Exception hierarchy shared by all compliance services."""


class ComplianceError(Exception):
    """Base class for compliance engine errors."""
    pass


class NotFoundError(ComplianceError):
    """Raised when an activity, policy, tenant or consent record does not exist."""
    pass


class ForbiddenError(ComplianceError):
    """Raised when a resource exists but belongs to a different tenant."""
    pass


class ConsentWriteConflictError(ComplianceError):
    """Raised when a consent key kept changing underneath a write after all retries."""
    pass


class RetentionLeaseError(ComplianceError):
    """Raised when another worker holds the execution lease for a (tenant, data type) pair."""
    pass


class RetentionConditionError(ComplianceError):
    """Raised when a retention policy condition references an unknown field or operator."""
    pass


class StateTransitionError(ComplianceError):
    """Raised when an invalid state transition is attempted."""
    pass


class ConfigurationError(ComplianceError):
    """Raised when the regulatory configuration file is invalid."""
    pass
