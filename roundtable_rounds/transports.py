# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Backend collaborator interface used by the orchestrator.

Persistence, HTTP handling and model invocation live behind this interface.
Implementations raise ``TransportError`` for any failure; the orchestrator
turns it into a terminal status on the owning entity.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from .models import Message, Participant, PreSearch, Thread


@dataclass(frozen=True)
class TextDelta:
    """Incremental text of a participant stream."""

    text: str


@dataclass(frozen=True)
class StreamFinish:
    """Terminal event of a participant stream.

    Attributes:
        finish_reason: Reported finish reason (e.g. "stop", "unknown")
        usage: Token usage
        text: Full final text, when the transport reports it
    """

    finish_reason: str
    usage: Dict[str, Any] = field(default_factory=dict)
    text: Optional[str] = None


ParticipantEvent = Union[TextDelta, StreamFinish]


@dataclass(frozen=True)
class TitleStatus:
    """Result of a title/slug poll."""

    ready: bool
    title: Optional[str] = None
    slug: Optional[str] = None


class RoundBackend(ABC):
    """Abstract base class for the backend collaborators of a round."""

    @abstractmethod
    async def submit_message(
        self,
        thread_id: str,
        round_number: int,
        content: str,
        participant_ids: Sequence[str],
        enable_web_search: bool,
    ) -> Message:
        """Persist the user message of a round.

        Returns:
            The created user message, carrying its zero-based round number
        """
        pass

    @abstractmethod
    async def update_thread_configuration(
        self,
        thread_id: str,
        participants: Optional[Sequence[Participant]] = None,
        mode: Optional[str] = None,
        enable_web_search: Optional[bool] = None,
    ) -> Tuple[Thread, List[Participant]]:
        """Apply roster or mode changes.

        Returns:
            Updated thread and participants
        """
        pass

    @abstractmethod
    async def create_pre_search(self, thread_id: str, round_number: int, query: str) -> PreSearch:
        """Create the pre-search of a round; the returned record is pending."""
        pass

    @abstractmethod
    async def poll_pre_search(self, thread_id: str, round_number: int) -> PreSearch:
        """Current pre-search record, with search data once complete."""
        pass

    @abstractmethod
    def stream_participant(
        self,
        thread_id: str,
        round_number: int,
        participant_index: int,
        participant: Participant,
    ) -> AsyncIterator[ParticipantEvent]:
        """Stream one participant's answer: text deltas then one finish event."""
        pass

    @abstractmethod
    def resume_participant_stream(
        self,
        thread_id: str,
        round_number: int,
        participant_index: int,
    ) -> AsyncIterator[ParticipantEvent]:
        """Re-attach to an in-flight participant stream.

        Raises:
            TransportError: If the stream no longer exists
        """
        pass

    @abstractmethod
    def stream_moderator(
        self,
        thread_id: str,
        round_number: int,
        participant_message_ids: Sequence[str],
    ) -> AsyncIterator[Dict[str, Any]]:
        """Stream partial moderator objects."""
        pass

    @abstractmethod
    def stream_analysis(
        self,
        thread_id: str,
        round_number: int,
        participant_message_ids: Sequence[str],
    ) -> AsyncIterator[Dict[str, Any]]:
        """Stream partial analysis objects; raises TransportError on a terminal error."""
        pass

    @abstractmethod
    async def poll_title(self, thread_id: str) -> TitleStatus:
        pass
