"""Relay event model.

Every SSE frame carries one :class:`SwarmEvent` as a flat camelCase JSON
object.  Only the fields relevant to the event type are set; unset fields
are left out of the frame.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from swarmdesk.server.models.enums import EventType, OutputStream, SessionStatus


class SwarmEvent(BaseModel):
    """Wire-format event for one session's stream."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: EventType
    message: str
    session_id: str

    # output
    stream: OutputStream | None = None
    # status
    pid: int | None = None
    # terminal
    status: SessionStatus | None = None
    duration: int | None = None
    output: str | None = None
    error: str | None = None
    exit_code: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type.is_terminal
