class AppException(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InitializationError(AppException):
    """Schema creation or migration failed; the store cannot be used."""


class ConstraintViolation(AppException):
    """A unique or foreign-key constraint rejected a write."""


class DuplicateEmail(ConstraintViolation):
    def __init__(self, email: str):
        super().__init__(f"Email já cadastrado: {email}")
        self.email = email


class StorageError(AppException):
    """The storage engine failed. The original exception is kept on ``cause``."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class InvalidInput(AppException):
    pass
