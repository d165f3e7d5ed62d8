from typing import Optional


class DatabaseError(Exception):
    """Custom exception for database-related errors."""

    def __init__(self, message: str, error_code: str = "DB_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ReminderQueryError(DatabaseError):
    """
    The due-subscription query could not be executed.

    ``details`` carries whatever remediation hint the store gave back, such as
    the composite index that has to be created before the query can run.
    """

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        error_code: str = "REMINDER_QUERY_FAILED",
    ):
        super().__init__(message, error_code)
        self.details = details


class PushGatewayError(Exception):
    """Custom exception for push delivery errors."""

    def __init__(self, message: str, error_code: str = "PUSH_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
