class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ReferentialError(AppError):
    """Raised when a class, section, subject or teacher is missing or outside the school."""
    def __init__(self, message: str, *, status_code: int = 404, details: dict = None):
        super().__init__(message, status_code=status_code, details=details)


class InvalidTimeFormat(AppError, ValueError):
    """Raised when a time string is not a valid 24-hour HH:MM value."""
    def __init__(self, value: object):
        super().__init__(
            f"Invalid time '{value}'. Time must be in HH:MM 24-hour format",
            status_code=400,
            details={"value": str(value)},
        )


class InvalidRange(AppError, ValueError):
    """Raised when a time range has no duration."""
    def __init__(self, start_time: str, end_time: str):
        super().__init__(
            f"Time range {start_time}-{end_time} has zero length",
            status_code=400,
            details={"start_time": start_time, "end_time": end_time},
        )


class ConflictError(AppError):
    """Raised when an allocation overlaps another one on a shared teacher or class calendar."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class DuplicateSubjectError(AppError):
    """Raised when a subject is already scheduled for the same exam cycle."""
    def __init__(self, message: str, *, existing_id: str | None = None):
        super().__init__(message, status_code=400, details={"existing_id": existing_id})


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)


class PersistenceError(AppError):
    """Raised when the storage layer fails; never carries driver details."""
    def __init__(self, message: str = "Unable to save schedule changes"):
        super().__init__(message, status_code=500)


class PastExamDateError(AppError):
    """Raised when an exam is placed on a date before today in the school's timezone."""
    def __init__(self, exam_date: str):
        super().__init__(
            "Exam date cannot be in the past",
            status_code=400,
            details={"exam_date": exam_date},
        )
