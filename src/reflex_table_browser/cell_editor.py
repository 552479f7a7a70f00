"""Single-cell inline editing against the engine's field-update endpoint.

State machine::

    Idle --start--> Editing --commit--> Saving --ok--> Idle (+ re-fetch)
                     |   ^                 |
               cancel|   |dismiss_error    |error
                     v   |                 v
                    Idle Failed <----------+

An empty value never leaves the client: the session stays in Editing
with a validation message.  After a successful save the grid is
re-fetched; the edited value shown until then is never trusted as final.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from reflex_table_browser.errors import RemoteExecutionError, ValidationError
from reflex_table_browser.models import CellEditSession, EditStatus
from reflex_table_browser.service import QueryService

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[Any]]

RECORD_ID_FIELDS: tuple[str, ...] = ("id", "_id")
EMPTY_VALUE_MESSAGE = "Value cannot be empty"
UPDATE_FAILED_MESSAGE = "Failed to update value"


def resolve_record_id(row: Mapping[str, Any]) -> str | None:
    """Return the row's identifier from ``id`` or ``_id``, if present."""
    for key in RECORD_ID_FIELDS:
        value = row.get(key)
        if value is not None and str(value) != "":
            return str(value)
    return None


def validate_edit_value(value: str) -> str:
    """Return *value* trimmed, or raise if nothing is left."""
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(EMPTY_VALUE_MESSAGE)
    return trimmed


class InlineCellEditor:
    """Coordinates the one active :class:`CellEditSession`.

    Args:
        service: Engine providing ``update_field``.
        session_id: Engine session the records belong to.
        refresh: Coroutine function that re-fetches the current query.
    """

    def __init__(
        self,
        service: QueryService,
        session_id: str,
        refresh: RefreshCallback,
    ) -> None:
        self._service = service
        self._session_id = session_id
        self._refresh = refresh
        self.session: CellEditSession | None = None

    @property
    def status(self) -> EditStatus:
        return self.session.status if self.session is not None else EditStatus.IDLE

    def is_editing(self, record_id: str, field_name: str) -> bool:
        return (
            self.session is not None
            and self.session.record_id == record_id
            and self.session.field_name == field_name
        )

    def start(self, row: Mapping[str, Any], field_name: str) -> bool:
        """Begin editing *field_name* of *row*.

        Any other active session is cancelled without saving.  Returns
        ``False`` (and stays put) when the row has no identifier.
        """
        record_id = resolve_record_id(row)
        if record_id is None:
            logger.warning("Cannot edit %r: row has no 'id' or '_id'", field_name)
            return False

        if self.session is not None:
            logger.debug(
                "Discarding edit of %s.%s", self.session.record_id, self.session.field_name
            )

        value = row.get(field_name)
        original = "" if value is None else str(value)
        self.session = CellEditSession(
            record_id=record_id,
            field_name=field_name,
            original_value=original,
            pending_value=original,
            status=EditStatus.EDITING,
        )
        return True

    def set_pending(self, value: str) -> None:
        """Update the value being typed.  Ignored while a save is in flight."""
        if self.session is None or self.session.status == EditStatus.SAVING:
            return
        self.session = self.session.model_copy(
            update={"pending_value": value, "status": EditStatus.EDITING, "message": ""}
        )

    def cancel(self) -> None:
        if self.session is not None and self.session.status == EditStatus.SAVING:
            return
        self.session = None

    def dismiss_error(self) -> None:
        """Close the failure alert and return to Editing with the value kept."""
        if self.session is not None and self.session.status == EditStatus.FAILED:
            self.session = self.session.model_copy(
                update={"status": EditStatus.EDITING, "message": ""}
            )

    async def commit(self) -> bool:
        """Save the pending value.

        Returns:
            ``True`` if the engine accepted the value.  On a validation
            failure the session stays in Editing; on a remote failure it
            moves to Failed.  Both keep the pending value.
        """
        session = self.session
        if session is None or session.status == EditStatus.SAVING:
            return False

        try:
            value = validate_edit_value(session.pending_value)
        except ValidationError as exc:
            self.session = session.model_copy(
                update={"status": EditStatus.EDITING, "message": str(exc)}
            )
            return False

        saving = session.model_copy(update={"status": EditStatus.SAVING, "message": ""})
        self.session = saving
        try:
            await self._service.update_field(
                self._session_id, saving.record_id, saving.field_name, value
            )
        except RemoteExecutionError as exc:
            logger.warning(
                "Update of %s.%s failed: %s", saving.record_id, saving.field_name, exc
            )
            if self.session is saving:
                self.session = saving.model_copy(
                    update={
                        "status": EditStatus.FAILED,
                        "message": exc.display_message(UPDATE_FAILED_MESSAGE),
                    }
                )
            return False
        except BaseException:
            # Never leave the session locked in Saving.
            if self.session is saving:
                self.session = saving.model_copy(
                    update={"status": EditStatus.FAILED, "message": UPDATE_FAILED_MESSAGE}
                )
            raise

        logger.info("Updated %s.%s", saving.record_id, saving.field_name)
        if self.session is saving:
            self.session = None
        await self._refresh()
        return True

    async def blur(self) -> bool:
        """Leaving the cell saves a changed value and cancels an unchanged one."""
        session = self.session
        if session is None or session.status == EditStatus.SAVING:
            return False
        if session.pending_value == session.original_value:
            self.cancel()
            return False
        return await self.commit()
