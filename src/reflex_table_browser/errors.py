"""Error taxonomy for the table browser.

Two kinds of failure reach the user:

* :class:`ValidationError` -- input rejected locally (empty filter value,
  missing column, empty edit value).  No request is sent.
* :class:`RemoteExecutionError` -- the remote engine failed a query,
  update, delete or export.  The view keeps its last good state.

Stale responses are not errors and never raise.
"""


class TableBrowserError(Exception):
    """Base class for all table browser errors."""


class ValidationError(TableBrowserError):
    """Input rejected before any request was issued."""


class RemoteExecutionError(TableBrowserError):
    """A call to the remote engine failed.

    Args:
        message: Short description of the failed operation.
        server_message: Raw message reported by the server, if any.
        status_code: HTTP status code, if the failure came with a response.
    """

    def __init__(
        self,
        message: str,
        *,
        server_message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.server_message = server_message
        self.status_code = status_code

    def display_message(self, fallback: str | None = None) -> str:
        """Return the text to show the user.

        Prefers the raw server message, then *fallback*, then the local
        description of the failure.
        """
        if self.server_message:
            return self.server_message
        return fallback or self.message

    def __str__(self) -> str:
        if self.server_message:
            return f"{self.message}: {self.server_message}"
        return self.message
