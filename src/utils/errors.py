"""Error handling utilities."""


class WholesaleError(Exception):
    """Base exception for the wholesale marketplace backend."""
    pass


class SupabaseError(WholesaleError):
    """Supabase operation error."""
    pass


class AuthenticationError(WholesaleError):
    """Missing or invalid session token."""
    pass


class AuthorizationError(WholesaleError):
    """Caller lacks the required role."""
    pass


class InputValidationError(WholesaleError):
    """Client supplied input failed validation."""
    pass


class OfferClosedError(WholesaleError):
    """Property is not accepting offers."""
    pass


class EmailError(WholesaleError):
    """Transactional email delivery error."""
    pass
