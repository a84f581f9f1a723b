"""
Domain-specific exceptions for spaces app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class SpacesServiceError(Exception):
    """Base exception for all spaces service errors."""
    pass


class SpaceNotFoundError(SpacesServiceError):
    """Raised when a space does not exist."""
    pass


class DuplicateSpaceError(SpacesServiceError):
    """Raised when a space with the same id already exists."""
    pass


class ParticipantNotFoundError(SpacesServiceError):
    """Raised when a participant does not exist."""
    pass


class PrimaryParticipantError(SpacesServiceError):
    """Raised when an operation is not allowed on the primary user."""
    pass
