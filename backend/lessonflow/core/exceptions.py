class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulingValidationError(AppError):
    """Raised before any store call when a scheduling request cannot start."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class SlotValidationError(AppError):
    """Raised when a weekly slot edit carries an unusable value."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConflictDecisionRequired(AppError):
    """Raised when existing lessons clash with the plan and keep/replace was not chosen."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class SchedulingInProgressError(AppError):
    """Raised when a teacher already has a scheduling run in flight."""
    def __init__(self, teacher_id: str):
        super().__init__(
            "A lesson scheduling run is already in progress for this teacher",
            status_code=409,
            details={"teacher_id": teacher_id},
        )

class StoreError(AppError):
    """Raised when the data store rejects or fails a read or write."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=503, details=details)

class StoreFieldError(AppError):
    """Raised when a caller passes a table, column or filter the store does not expose."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class LessonCommitError(AppError):
    """Raised when a fatal write fails mid-pipeline; details carry the partial result."""
    def __init__(self, message: str, partial_result: dict | None = None):
        super().__init__(message, status_code=502, details={"partial_result": partial_result or {}})
