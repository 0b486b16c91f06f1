"""
Domain exceptions for the application.

Services raise these instead of fastapi.HTTPException to avoid coupling
the service layer to the web framework. Routers and the global exception
handler in main.py translate them into HTTP responses.
"""


class AppError(Exception):
    """Base application error with an HTTP-equivalent status code."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(AppError):
    """Input validation failure (400)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class UpstreamUnavailableError(AppError):
    """Upstream data source unavailable (503)."""

    def __init__(self, message: str = "Upstream data source unavailable"):
        super().__init__(message, status_code=503)
