from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFound(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class InvalidInput(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class StateConflict(ServiceError):
    """Requested transition is not legal from the order's current status. Nothing was written."""

    def __init__(self, message: str, current_status: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
        self.current_status = current_status


class SealedReport(ServiceError):
    """Audit report is COMPLETED; audit data can no longer change."""

    def __init__(self, message: str = "Audit report is sealed and can no longer be modified") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
