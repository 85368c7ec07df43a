# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Scriptable in-memory backend for tests and local development."""

import asyncio
import copy
from dataclasses import replace
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from .exceptions import TransportError
from .models import Message, MessagePart, MessageRole, Participant, PhaseStatus, PreSearch, Thread
from .transports import ParticipantEvent, RoundBackend, StreamFinish, TextDelta, TitleStatus

DEFAULT_MODERATOR_PAYLOAD = {
    "summary": "The participants converged on a shared approach while differing on rollout order.",
    "metrics": {"engagement": 82, "insight": 74, "balance": 68, "clarity": 90},
}


def build_analysis_payload(participant_count: int) -> Dict[str, Any]:
    """A valid analysis payload covering participant indices 0..participant_count-1."""
    return {
        "leaderboard": [
            {"rank": i + 1, "participantIndex": i, "score": 90 - 10 * i, "badges": []}
            for i in range(participant_count)
        ],
        "participantAnalyses": [
            {
                "participantIndex": i,
                "scores": {"creativity": 70, "technicalDepth": 80, "clarity": 75},
                "strengths": ["Clear structure"],
                "weaknesses": ["Few concrete examples"],
                "summary": f"Participant {i} gave a focused answer.",
            }
            for i in range(participant_count)
        ],
        "roundSummary": {
            "keyInsights": ["Incremental rollout lowers risk"],
            "consensusPoints": ["Start with a pilot"],
            "divergentApproaches": ["Build versus buy"],
            "recommendedActions": ["Run a two-week pilot"],
        },
    }


class MockRoundBackend(RoundBackend):
    """Backend whose responses are scripted per round and participant.

    Every call is recorded in ``calls`` as (name, arguments). Streams that
    have a gate in ``participant_gates`` wait for the gate before finishing,
    which lets tests interleave user actions with in-flight streams.
    """

    def __init__(self, chunk_delay: float = 0.0):
        self.chunk_delay = chunk_delay
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

        self.threads: Dict[str, Thread] = {}
        self.rosters: Dict[str, List[Participant]] = {}
        self.config_gate: Optional[asyncio.Event] = None
        self.config_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None

        self.participant_responses: Dict[Tuple[int, int], List[ParticipantEvent]] = {}
        self.participant_errors: Dict[Tuple[int, int], Exception] = {}
        self.participant_gates: Dict[Tuple[int, int], asyncio.Event] = {}
        self.resume_responses: Dict[Tuple[int, int], List[ParticipantEvent]] = {}

        self.pre_search_statuses: List[PhaseStatus] = [PhaseStatus.COMPLETE]
        self.pre_search_gate: Optional[asyncio.Event] = None
        self.pre_search_error: Optional[Exception] = None
        self._pre_search_polls: Dict[int, int] = {}

        self.moderator_partials: Optional[List[Dict[str, Any]]] = None
        self.moderator_error: Optional[Exception] = None
        self.analysis_partials: Optional[List[Dict[str, Any]]] = None
        self.analysis_error: Optional[Exception] = None

        self.title_ready_after = 1
        self.generated_title = "Pilot rollout plan"
        self.generated_slug = "pilot-rollout-plan"
        self._title_polls = 0

    def register_thread(self, thread: Thread, participants: Sequence[Participant]) -> None:
        self.threads[thread.id] = thread
        self.rosters[thread.id] = list(participants)

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def calls_named(self, name: str) -> List[Dict[str, Any]]:
        return [args for call, args in self.calls if call == name]

    async def _pause(self) -> None:
        await asyncio.sleep(self.chunk_delay)

    async def submit_message(self, thread_id, round_number, content, participant_ids, enable_web_search) -> Message:
        self.calls.append(("submit_message", {
            "thread_id": thread_id,
            "round_number": round_number,
            "content": content,
            "participant_ids": list(participant_ids),
            "enable_web_search": enable_web_search,
        }))
        await self._pause()
        if self.submit_error is not None:
            raise self.submit_error
        return Message(
            id=f"{thread_id}_r{round_number}_user",
            role=MessageRole.USER,
            round_number=round_number,
            parts=[MessagePart(text=content)],
        )

    async def update_thread_configuration(self, thread_id, participants=None, mode=None, enable_web_search=None):
        self.calls.append(("update_thread_configuration", {
            "thread_id": thread_id,
            "participants": copy.deepcopy(participants),
            "mode": mode,
            "enable_web_search": enable_web_search,
        }))
        if self.config_gate is not None:
            await self.config_gate.wait()
        if self.config_error is not None:
            raise self.config_error

        thread = self.threads[thread_id]
        if mode is not None:
            thread = replace(thread, mode=mode)
        if enable_web_search is not None:
            thread = replace(thread, enable_web_search=enable_web_search)
        self.threads[thread_id] = thread
        if participants is not None:
            self.rosters[thread_id] = list(participants)
        return thread, list(self.rosters[thread_id])

    async def create_pre_search(self, thread_id, round_number, query) -> PreSearch:
        self.calls.append(("create_pre_search", {"thread_id": thread_id, "round_number": round_number, "query": query}))
        if self.pre_search_error is not None:
            raise self.pre_search_error
        return PreSearch(
            id=f"{thread_id}_r{round_number}_presearch",
            thread_id=thread_id,
            round_number=round_number,
            status=PhaseStatus.PENDING,
            user_query=query,
        )

    async def poll_pre_search(self, thread_id, round_number) -> PreSearch:
        self.calls.append(("poll_pre_search", {"thread_id": thread_id, "round_number": round_number}))
        if self.pre_search_gate is not None:
            await self.pre_search_gate.wait()
        poll = self._pre_search_polls.get(round_number, 0)
        self._pre_search_polls[round_number] = poll + 1
        status = self.pre_search_statuses[min(poll, len(self.pre_search_statuses) - 1)]
        return PreSearch(
            id=f"{thread_id}_r{round_number}_presearch",
            thread_id=thread_id,
            round_number=round_number,
            status=status,
            search_data={"results": [{"title": "Result", "url": "https://example.com"}]}
            if status == PhaseStatus.COMPLETE else None,
        )

    async def _play(self, key: Tuple[int, int], events: List[ParticipantEvent]) -> AsyncIterator[ParticipantEvent]:
        for event in events:
            if isinstance(event, StreamFinish) and key in self.participant_gates:
                await self.participant_gates[key].wait()
            await self._pause()
            yield event

    async def stream_participant(self, thread_id, round_number, participant_index, participant):
        key = (round_number, participant_index)
        self.calls.append(("stream_participant", {
            "thread_id": thread_id,
            "round_number": round_number,
            "participant_index": participant_index,
            "participant_id": participant.id,
        }))
        if key in self.participant_errors:
            raise self.participant_errors[key]
        events = self.participant_responses.get(key) or [
            TextDelta(f"Answer from {participant.model_id}"),
            StreamFinish("stop", usage={"promptTokens": 12, "completionTokens": 5}),
        ]
        async for event in self._play(key, events):
            yield event

    async def resume_participant_stream(self, thread_id, round_number, participant_index):
        key = (round_number, participant_index)
        self.calls.append(("resume_participant_stream", {
            "thread_id": thread_id,
            "round_number": round_number,
            "participant_index": participant_index,
        }))
        if key not in self.resume_responses:
            raise TransportError(f"No active stream for round {round_number} participant {participant_index}")
        async for event in self._play(key, self.resume_responses[key]):
            yield event

    async def stream_moderator(self, thread_id, round_number, participant_message_ids):
        self.calls.append(("stream_moderator", {
            "thread_id": thread_id,
            "round_number": round_number,
            "participant_message_ids": list(participant_message_ids),
        }))
        if self.moderator_error is not None:
            raise self.moderator_error
        partials = self.moderator_partials
        if partials is None:
            summary = DEFAULT_MODERATOR_PAYLOAD["summary"]
            partials = [
                {"summary": summary[:12]},
                {"summary": summary},
                copy.deepcopy(DEFAULT_MODERATOR_PAYLOAD),
            ]
        for partial in partials:
            await self._pause()
            yield copy.deepcopy(partial)

    async def stream_analysis(self, thread_id, round_number, participant_message_ids):
        self.calls.append(("stream_analysis", {
            "thread_id": thread_id,
            "round_number": round_number,
            "participant_message_ids": list(participant_message_ids),
        }))
        partials = self.analysis_partials
        if partials is None:
            payload = build_analysis_payload(len(participant_message_ids))
            partials = [{"leaderboard": payload["leaderboard"]}, payload]
        for partial in partials:
            await self._pause()
            yield copy.deepcopy(partial)
        if self.analysis_error is not None:
            raise self.analysis_error

    async def poll_title(self, thread_id) -> TitleStatus:
        self.calls.append(("poll_title", {"thread_id": thread_id}))
        self._title_polls += 1
        if self._title_polls < self.title_ready_after:
            return TitleStatus(ready=False)
        return TitleStatus(ready=True, title=self.generated_title, slug=self.generated_slug)
