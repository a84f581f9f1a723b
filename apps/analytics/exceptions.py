"""
Domain exceptions for analytics app.

This module defines domain-specific exceptions that are raised by the
analytics query layer. These exceptions represent invalid requests,
separate from HTTP concerns.

Exception Hierarchy:
    AnalyticsServiceError (base)
    ├── SpaceNotFoundError
    └── InvalidScopeError

Usage:
    from apps.analytics.exceptions import SpaceNotFoundError

    try:
        data = LedgerAnalytics.space_balances(space_id='trip')
    except SpaceNotFoundError as e:
        return Response({'error': str(e)}, status=404)
"""


class AnalyticsServiceError(Exception):
    """
    Base exception for all analytics service errors.

    All domain-specific exceptions in the analytics app inherit from this
    class, making it easy to catch all analytics errors in views.
    """

    pass


class SpaceNotFoundError(AnalyticsServiceError):
    """
    Raised when the requested space does not exist.

    Example:
        raise SpaceNotFoundError("Space 'trip' not found")
    """

    pass


class InvalidScopeError(AnalyticsServiceError):
    """
    Raised when an unknown netting scope is requested.

    Valid scopes are: me, everyone.
    """

    pass
