"""
Service errors shared by lib/ and the API layer.

Domain services raise these; api/server.py maps them onto HTTP responses
with the status carried by each class.
"""


class ServiceError(Exception):
    """Base class for errors raised by domain services."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """Requested entity does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class BadRequestError(ServiceError):
    """Input is malformed or the operation makes no sense for the entity."""

    code = "BAD_REQUEST"
    status_code = 400


class ConflictError(ServiceError):
    """Entity already exists or the relation is already present."""

    code = "CONFLICT"
    status_code = 409


class PreconditionFailedError(ServiceError):
    """Operation refused because of the entity's current state."""

    code = "PRECONDITION_FAILED"
    status_code = 412


class KnowledgeBaseNotConfigured(ServiceError):
    """KNOWLEDGE_BASE_PATH is missing."""

    code = "KB_NOT_CONFIGURED"
    status_code = 500
