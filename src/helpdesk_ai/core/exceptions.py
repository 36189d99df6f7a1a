"""
Core Exceptions
================

Exception hierarchy shared by both bounded contexts.

Infrastructure adapters translate provider errors into these types so the
application layer can decide which failures are fatal and which degrade:
generation and evaluation errors abort a pipeline run, retrieval errors
fall back to no KB context, delivery errors are recorded on the queue entry.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """A domain rule rejected the operation."""


class RepositoryException(ApplicationException):
    """Data access failed."""


class ValidationException(ApplicationException):
    """Input is inconsistent with stored state."""


class ConfigurationException(ApplicationException):
    """A required setting is missing or invalid."""


class ResourceNotFoundException(ApplicationException):
    """Raised when a ticket, event or user referenced by a request does not exist."""

    def __init__(self, resource_type: str, resource_id: Optional[str] = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        if resource_id:
            message = f"{resource_type} with id '{resource_id}' not found"
        else:
            message = f"{resource_type} not found"
        super().__init__(message, {"resource_type": resource_type, "resource_id": resource_id})


class ExternalServiceException(ApplicationException):
    """
    A call to a third-party provider failed or timed out.

    Subclasses name the provider through service_name, which prefixes the
    message.
    """

    service_name = "External Service"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(f"{self.service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Chat completion or embedding call failed."""

    service_name = "LLM Service"

    @property
    def is_rate_limited(self) -> bool:
        return bool(self.details.get("rate_limited"))


class VectorStoreException(ExternalServiceException):
    """Vector index search or upsert failed."""

    service_name = "Vector Store"


class DeliveryException(ExternalServiceException):
    """The email provider rejected a message or could not be reached."""

    service_name = "Email Delivery"
