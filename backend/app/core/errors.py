"""Service-layer error taxonomy.

Services raise these; endpoints translate them into ``HTTPException`` with
the carried ``status_code``.  All of them are ``ValueError`` subclasses so
callers that only care about "the request was refused" can catch that.
"""

from __future__ import annotations


class ServiceError(ValueError):
    status_code: int = 400


class InvalidArgumentError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class InvalidTransitionError(InvalidArgumentError):
    """A status change the state machine does not allow."""

    status_code = 409

    def __init__(self, resource: str, current: str, target: str) -> None:
        self.resource = resource
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {resource} from '{current}' to '{target}'")


class StorageError(ServiceError):
    status_code = 500
