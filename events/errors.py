"""Error kinds raised by the registration workflow.

Every error carries a stable ``code`` and a ``context`` dict (entity ids,
current state, requested state or quantity) so callers can act on it without
parsing the message.
"""


class WorkflowError(Exception):
    code = "workflow_error"
    http_status = 400

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def as_dict(self):
        return {"code": self.code, "error": self.message, "context": {k: str(v) for k, v in self.context.items()}}


class NotFoundError(WorkflowError, LookupError):
    code = "not_found"
    http_status = 404


class ForbiddenError(WorkflowError, PermissionError):
    code = "forbidden"
    http_status = 403


class InvalidStateError(WorkflowError):
    code = "invalid_state"
    http_status = 409


class ConflictError(WorkflowError):
    code = "conflict"
    http_status = 409


class NotAvailableError(WorkflowError):
    code = "not_available"
    http_status = 409


class InsufficientInventoryError(WorkflowError):
    code = "insufficient_inventory"
    http_status = 409

    def __init__(self, message, *, equipment_id, requested, available, **context):
        super().__init__(message, equipment_id=equipment_id, requested=requested, available=available, **context)
        self.equipment_id = equipment_id
        self.requested = requested
        self.available = available


class TooLateToCancelError(WorkflowError):
    code = "too_late_to_cancel"
    http_status = 409
