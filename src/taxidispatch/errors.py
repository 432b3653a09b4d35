"""Domain errors raised by the data stores and dispatch workflows."""


class LoginError(ValueError):
    """Credentials rejected or account not allowed to log in."""


class DuplicateUserError(ValueError):
    """A user with the same phone number already exists."""


class NotFoundError(ValueError):
    """The requested row does not exist."""


class RequestUnavailableError(ValueError):
    """A trip request was taken by another driver or is no longer open."""
