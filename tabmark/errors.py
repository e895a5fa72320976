"""Errors raised by the bookmark services and mapped to responses by the blueprints."""


class TabmarkError(Exception):
    status_code = 500
    public_message = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        if message:
            self.public_message = message


class ValidationError(TabmarkError):
    """Bad input the user can correct, shown inline next to the form."""

    status_code = 400
    public_message = "URL and title are required"


class AuthError(TabmarkError):
    """No usable session; the caller has to sign in again."""

    status_code = 401
    public_message = "You must be logged in"


class StoreError(TabmarkError):
    """
    Persistence failure.

    The caller only ever sees the generic public message; the detailed message
    (and the chained database exception) is kept for the operator log.
    """

    status_code = 500
    public_message = "Failed to save changes, please try again"

    def __init__(self, detail: str) -> None:
        super().__init__()
        self.detail = detail

    def __str__(self) -> str:
        return self.detail
