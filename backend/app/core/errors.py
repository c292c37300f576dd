from fastapi import HTTPException, status


class ChatAppError(HTTPException):
    """
    Base class for domain errors. Services raise these directly and FastAPI
    renders them like any other HTTPException.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Something went wrong"

    def __init__(self, detail: str | None = None, headers: dict | None = None):
        super().__init__(status_code=type(self).status_code, detail=detail or self.default_detail, headers=headers)


class ValidationFailed(ChatAppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class Conflict(ChatAppError):
    # duplicate friend request, already friends, duplicate account
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Resource already exists"


class Unauthorized(ChatAppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"

    def __init__(self, detail: str | None = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class AccessDenied(ChatAppError):
    # same answer for unknown and foreign resources
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Access denied"


class NotFound(ChatAppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"
