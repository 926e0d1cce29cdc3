from typing import Any


class ClientError(Exception):
    """Base class for errors raised by the portal workflow client."""


class ValidationError(ClientError):
    """Local validation failure; no request was sent."""


class ApiError(ClientError):
    def __init__(self, status: int, message: str, data: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.data = data


class NotFoundError(ApiError):
    """404 from the portal API, e.g. a trilha without prova."""


class PhaseError(ClientError):
    """A failure that blocks the orchestrator from entering the next phase."""


class BusyError(ClientError):
    """An action was triggered while another call is still in flight."""


class NoFaceDetectedError(ClientError):
    pass


class CameraUnavailableError(ClientError):
    pass
