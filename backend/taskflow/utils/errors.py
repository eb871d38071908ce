"""Domain errors raised by services and rendered by the API layer."""

from fastapi import status


class TaskFlowError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskFlowError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(TaskFlowError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(TaskFlowError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(TaskFlowError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(TaskFlowError):
    status_code = status.HTTP_409_CONFLICT
