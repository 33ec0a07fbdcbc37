# conekt/core/exceptions.py
"""
Domain-specific exceptions for the Conekt messaging core.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class UnauthorizedException(DomainException):
    """Raised when there is no authenticated identity."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ForbiddenException(DomainException):
    """Raised when the caller is not a participant of the targeted conversation."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific messaging exceptions


class InvalidParticipantsException(ValidationException):
    """Raised when two participant ids cannot form a conversation."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_PARTICIPANTS", details=details or {})


class InvalidMessageException(ValidationException):
    """Raised when a message body is empty or too long."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_MESSAGE", details=details or {})


class MalformedConversationIdException(ValidationException):
    """Raised when a conversation id does not decompose into two participants."""

    def __init__(self, conversation_id: str):
        super().__init__(
            message=f"Malformed conversation id: {conversation_id}",
            code="MALFORMED_CONVERSATION_ID",
            details={"conversation_id": conversation_id},
        )


class RetrievalFailedException(ServiceException):
    """Transient failure while reading from the message store. Caller retries."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Failed to load messages", **kwargs: Any) -> None:
        kwargs.setdefault("code", "RETRIEVAL_FAILED")
        super().__init__(message, **kwargs)


class SendFailedException(ServiceException):
    """Transient failure while persisting a message. Never retried automatically."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Failed to send message", **kwargs: Any) -> None:
        kwargs.setdefault("code", "SEND_FAILED")
        super().__init__(message, **kwargs)


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
