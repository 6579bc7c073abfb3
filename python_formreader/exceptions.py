from __future__ import annotations


class FormReaderError(ValueError):
    """Base error class for our form reader."""


class LimitExceededError(FormReaderError):
    """This exception is raised when the form being read crosses one of the
    configured limits - the number of distinct keys, or the decoded length of
    a key or a value.
    """

    #: The limit that was exceeded, as reported in the message.
    limit: int | float

    def __init__(self, message: str, limit: int | float) -> None:
        super().__init__(message)
        self.limit = limit
