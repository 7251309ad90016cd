"""Typed failures raised by the services and rendered by the app.

Every error carries an HTTP status and a short machine-readable code so the
JSON error handler (and the client package) can map them both ways.
"""


class TaskboardError(Exception):
    """Base class for all expected failures."""

    status_code = 500
    code = "error"

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(TaskboardError, ValueError):
    """Malformed user input."""

    status_code = 400
    code = "validation_error"


class InvalidInput(TaskboardError, ValueError):
    """Invalid input to a pure helper."""

    status_code = 400
    code = "invalid_input"


class UnknownChild(TaskboardError):
    """A reorder or move referenced an entity that is not in the container."""

    status_code = 409
    code = "unknown_child"

    def __init__(self, kind, container_id, ids):
        self.kind = kind
        self.container_id = container_id
        self.ids = list(ids)
        super().__init__(
            f"Cannot reorder unknown {kind} {', '.join(self.ids)} "
            f"in container {container_id}."
        )

    def to_dict(self):
        data = super().to_dict()
        data.update(kind=self.kind, container_id=self.container_id, ids=self.ids)
        return data


class BoardNotFound(TaskboardError):
    """Board not found."""

    status_code = 404
    code = "not_found"


class ContainerNotFound(TaskboardError):
    """Column not found."""

    status_code = 404
    code = "not_found"


class CardNotFound(TaskboardError):
    """Card not found."""

    status_code = 404
    code = "not_found"


class PersistenceFailure(TaskboardError):
    """The ordering store could not apply a write."""

    status_code = 503
    code = "persistence_failure"


class MalformedRow(TaskboardError):
    """A storage row is missing required fields."""

    status_code = 500
    code = "malformed_row"

    def __init__(self, kind, entity_id, missing):
        self.kind = kind
        self.entity_id = entity_id
        self.missing = list(missing)
        super().__init__(
            f"Malformed {kind} row {entity_id or '(no id)'}: "
            f"missing {', '.join(self.missing)}."
        )


class Unauthenticated(TaskboardError):
    """Authentication required."""

    status_code = 401
    code = "unauthenticated"


class AuthConfigurationError(TaskboardError):
    """Authentication is not configured on this server."""

    status_code = 503
    code = "auth_configuration"


class CompletionUnavailable(TaskboardError):
    """The AI completion service is not configured."""

    status_code = 500
    code = "completion_unavailable"


class CompletionError(TaskboardError):
    """The AI completion request failed."""

    status_code = 502
    code = "completion_error"
