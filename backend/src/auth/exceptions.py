"""Authentication-specific exceptions."""

from fastapi import HTTPException, status


class AuthenticationError(HTTPException):
    """Base authentication error."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class InvalidTokenError(AuthenticationError):
    """Invalid token provided."""

    def __init__(self) -> None:
        super().__init__(detail="Invalid token")


class TokenExpiredError(AuthenticationError):
    """Token has expired."""

    def __init__(self) -> None:
        super().__init__(detail="Token has expired")


class MissingTokenError(AuthenticationError):
    """No bearer token or access_token cookie on the request."""

    def __init__(self) -> None:
        super().__init__(detail="Missing authentication token")


class AuthProviderNotConfiguredError(HTTPException):
    """Auth provider not properly configured."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Authentication provider '{provider}' is not properly configured",
        )


class SupabaseConfigError(AuthProviderNotConfiguredError):
    def __init__(self) -> None:
        super().__init__("supabase")


class UnknownAuthProviderError(AuthProviderNotConfiguredError):
    pass
