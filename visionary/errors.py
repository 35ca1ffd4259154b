"""Error taxonomy shared by the session controller, the Gemini adapter and the API."""


class SimulationError(Exception):
    """Base class. `kind` is the tag the front end uses to style the banner."""

    kind = "service"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SimulationError):
    kind = "validation"


class EncodingError(SimulationError):
    kind = "encoding"


class ServiceRateLimited(SimulationError):
    kind = "rate_limited"


class ServiceError(SimulationError):
    kind = "service"


class SessionBusyError(SimulationError):
    """Raised when an operation arrives while it is not allowed (request in flight)."""

    kind = "busy"


class SelectionError(SimulationError):
    """A file was refused at selection time. The session is left untouched."""

    kind = "selection"


class FileTooLargeError(SelectionError):
    pass


class UnsupportedImageTypeError(SelectionError):
    pass
