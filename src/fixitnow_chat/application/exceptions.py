from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class NotAuthenticatedError(AppError):
    pass


class ValidationError(AppError):
    pass


class ChatConnectionError(AppError):
    """Messaging server unreachable, rejected the session, or dropped it."""


class FetchError(AppError):
    """A request/response call to the chat REST API failed."""


class SendError(FetchError):
    pass
