"""
Domain exceptions for the fleet portal.

Services raise these; routers translate them into HTTP responses.
"""


class FleetError(Exception):
    """Base class for every error the portal raises on purpose."""

    def __init__(self, message: str = "An error occurred. Please try again.") -> None:
        self.message = message
        super().__init__(self.message)


class NotFoundError(FleetError):
    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)


class ValidationError(FleetError):
    pass


class AuthError(FleetError):
    """Credential problems surfaced to the user (bad password, weak password...)."""


class UnauthenticatedError(AuthError):
    def __init__(self, message: str = "You must be logged in to perform this action") -> None:
        super().__init__(message)


class PermissionDeniedError(FleetError):
    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)


class AlreadyExistsError(FleetError):
    pass


class VehicleUnavailableError(FleetError):
    def __init__(self, message: str = "Vehicle is not available for the selected dates") -> None:
        super().__init__(message)


class InspectionNotAllowedError(FleetError):
    pass


class AuthRedirect(Exception):
    """Raised by page guards; the app turns it into a redirect to `location`."""

    def __init__(self, location: str = "/") -> None:
        self.location = location
        super().__init__(location)
