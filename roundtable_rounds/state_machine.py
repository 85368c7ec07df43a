# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Round lifecycle state machine.

Each round moves through::

    Idle -> AwaitingPreSearch -> StreamingParticipants -> AwaitingModerator
         -> StreamingModerator -> AwaitingAnalysis -> StreamingAnalysis -> Complete

with Stopped reachable from any non-terminal phase. Every event handler is a
synchronous transition that returns the resulting phase and the side effects
to perform. Phases are tracked per round, so a new round may be submitted
while the previous round's analysis is still streaming.
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from roundtable_config import EngineSettings

from .analysis import AnalysisTrigger, has_analysis_data
from .effects import (
    AbortRound,
    CreatePreSearch,
    PhaseFailure,
    ResumeParticipantStream,
    SendUserMessage,
    StartTitlePolling,
    StreamAnalysis,
    StreamModerator,
    StreamParticipant,
    Transition,
)
from .exceptions import AnalysisParseError, InvariantViolationError, RoundError, RoundInProgressError
from .guards import GuardRegistry
from .messages import MessageLog, moderator_message_id, optimistic_user_message_id
from .moderator import ModeratorTrigger, is_displayable
from .models import (
    PART_STATE_DONE,
    PART_STATE_STREAMING,
    Analysis,
    FinishReason,
    Message,
    MessagePart,
    MessageRole,
    Participant,
    PhaseStatus,
    PreSearch,
    RoundPhase,
    StreamResumptionState,
    Thread,
    utcnow,
)
from .participants import enabled_participants, reindex, sort_by_priority
from .pre_search import PreSearchCoordinator
from .resumption import StreamResumptionManager
from .sequencer import ParticipantSequencer, is_message_complete

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "Stopped by user"


@dataclass(frozen=True)
class RoundSnapshot:
    """Immutable view of the engine state handed to subscribers."""

    thread: Optional[Thread]
    participants: Tuple[Participant, ...]
    current_round: Optional[int]
    phase: RoundPhase
    phases: Dict[int, RoundPhase]
    is_streaming: bool
    pending_message: Optional[str]
    expected_participant_ids: Tuple[str, ...]
    has_early_optimistic_message: bool
    current_participant_index: Optional[int]
    messages: Tuple[Message, ...]
    pre_searches: Tuple[PreSearch, ...]
    analyses: Tuple[Analysis, ...]
    stopped_rounds: FrozenSet[int] = field(default_factory=frozenset)
    is_regenerating: bool = False
    regenerating_round_number: Optional[int] = None


class RoundStateMachine:
    """Authoritative round phase logic for one thread session.

    Attributes:
        registry: Idempotency guards shared by every trigger path
        thread: Loaded thread, or None before a thread is loaded
        participants: Current roster in priority order
        messages: Message log of the thread
        is_streaming: Whether participant streaming is in progress
        pending_message: Content of the submitted message of the running round
        expected_participant_ids: Enabled participants the running round waits for
        has_early_optimistic_message: Set between optimistic insertion and promotion
        config_patch_pending: Whether a configuration update is in flight
    """

    def __init__(self, settings: Optional[EngineSettings] = None, registry: Optional[GuardRegistry] = None):
        self.settings = settings or EngineSettings()
        self.registry = registry or GuardRegistry()

        self.thread: Optional[Thread] = None
        self.participants: List[Participant] = []
        self.messages = MessageLog()

        self.pre_search = PreSearchCoordinator(
            self.registry.pre_search_triggered,
            activity_timeout=timedelta(seconds=self.settings.pre_search_timeout_seconds),
        )
        self.sequencer = ParticipantSequencer(self.messages)
        self.moderator = ModeratorTrigger(self.registry.moderator_created, self.registry.moderator_stream_triggered)
        self.analysis = AnalysisTrigger(
            self.registry.analysis_created,
            summary_max_length=self.settings.analysis_summary_max_length,
        )
        self.resumption = StreamResumptionManager(
            self.registry,
            max_age=timedelta(seconds=self.settings.resumption_max_age_seconds),
        )

        self.phases: Dict[int, RoundPhase] = {}
        self.current_round: Optional[int] = None
        self.stopped_rounds: Set[int] = set()
        self._rosters: Dict[int, List[Participant]] = {}

        self.is_streaming = False
        self.pending_message: Optional[str] = None
        self.expected_participant_ids: List[str] = []
        self.has_early_optimistic_message = False
        self.config_patch_pending = False
        self.is_regenerating = False
        self.regenerating_round_number: Optional[int] = None

        self._submission_round: Optional[int] = None
        self._submission_content: Optional[str] = None
        self._optimistic_message_id: Optional[str] = None
        self._duplicates: List[str] = []

    # ------------------------------------------------------------------
    # State helpers

    @property
    def phase(self) -> RoundPhase:
        if self.current_round is None:
            return RoundPhase.IDLE
        return self.phase_of(self.current_round)

    def phase_of(self, round_number: int) -> RoundPhase:
        return self.phases.get(round_number, RoundPhase.IDLE)

    def is_stopped(self, round_number: int) -> bool:
        return round_number in self.stopped_rounds

    def roster(self, round_number: int) -> List[Participant]:
        """Participants the round was started with, or the current enabled roster for a new round."""
        return list(self._rosters.get(round_number, enabled_participants(self.participants)))

    def _set_phase(self, round_number: int, phase: RoundPhase) -> None:
        previous = self.phase_of(round_number)
        if previous != phase:
            logger.debug(f"Round {round_number}: {previous.value} -> {phase.value}")
        self.phases[round_number] = phase

    def _result(self, round_number: Optional[int], effects=None, failures=None, changed: bool = True) -> Transition:
        self.check_invariants()
        phase = self.phase_of(round_number) if round_number is not None else RoundPhase.IDLE
        duplicates, self._duplicates = self._duplicates, []
        return Transition(round_number, phase, list(effects or []), list(failures or []), changed, duplicates)

    def _noop(self, round_number: Optional[int]) -> Transition:
        return self._result(round_number, changed=False)

    def _note_duplicate(self, phase: str, round_number: int) -> None:
        logger.debug(f"Duplicate {phase} trigger for round {round_number} blocked")
        self._duplicates.append(phase)

    def check_invariants(self) -> None:
        """Raise if the engine reached an illegal state.

        Raises:
            InvariantViolationError: If streaming is on while an optimistic
                message has not been promoted to a pending message
        """
        if self.is_streaming and self.pending_message is None and self.has_early_optimistic_message:
            raise InvariantViolationError(
                "isStreaming is set while the optimistic message has no pending message"
            )

    def _completed_message_ids(self, round_number: int) -> List[str]:
        roster_size = len(self.roster(round_number))
        return [
            m.id for m in self.messages.participant_messages(round_number)
            if m.participant_index < roster_size and is_message_complete(m)
        ]

    def is_round_complete(self, round_number: int) -> bool:
        """Whether every enabled participant of the round has a complete message."""
        expected = len(self.roster(round_number))
        return expected > 0 and len(self._completed_message_ids(round_number)) == expected

    # ------------------------------------------------------------------
    # Loading and configuration

    def load(
        self,
        thread: Thread,
        participants: Sequence[Participant],
        messages: Sequence[Message] = (),
        pre_searches: Sequence[PreSearch] = (),
        analyses: Sequence[Analysis] = (),
        resumption_state: Optional[StreamResumptionState] = None,
        now: Optional[datetime] = None,
    ) -> Transition:
        """Hydrate the machine from backend state.

        Phases that already ran are marked in the guard registry so a remount
        never triggers them again. If the latest round has an in-flight
        participant stream, the returned transition re-attaches to it; if its
        analysis never finished, the analysis stream is re-attached.
        """
        self.thread = thread
        self.participants = reindex(sort_by_priority(participants))
        for message in messages:
            self.messages.upsert(message)
        for record in pre_searches:
            self.pre_search.add(record)
        for record in analyses:
            self.analysis.add(record)
        self.registry.mark_completed_rounds(
            moderator_rounds=[(m.id, m.round_number) for m in self.messages.ordered() if m.is_moderator],
        )

        latest = self.messages.last_round_number()
        self.current_round = latest
        if latest is None:
            return self._noop(None)

        for round_number in range(latest + 1):
            self._rosters[round_number] = self._loaded_roster(round_number, latest)
            self._set_phase(round_number, RoundPhase.COMPLETE)
        effects = []

        self.resumption.set_state(resumption_state)
        enabled_count = len(self._rosters[latest])
        analysis = self.analysis.get(latest)
        if (
            resumption_state is not None
            and resumption_state.round_number == latest
            and self.resumption.needs_resumption(thread.id, enabled_count, now=now)
        ):
            effects.extend(self._resume(latest, resumption_state.participant_index))
        elif analysis is not None and not analysis.status.is_terminal:
            self._set_phase(latest, RoundPhase.AWAITING_ANALYSIS)
            effects.append(StreamAnalysis(latest, analysis.id, tuple(analysis.participant_message_ids)))
        else:
            if resumption_state is not None:
                logger.info(f"Skipping resumption for thread {thread.id}: state is stale or out of bounds")
                self.resumption.clear()
            effects.extend(self._continue_incomplete_round(latest))

        return self._result(latest, effects)

    def _loaded_roster(self, round_number: int, latest: int) -> List[Participant]:
        """Participants a hydrated round ran with.

        The latest round without a moderator or analysis may still have turns
        to run, so it keeps the current enabled roster unless a participant
        that already answered is no longer enabled. Every other round is
        rebuilt from its participant messages.
        """
        answered = self.messages.participant_messages(round_number)
        enabled = enabled_participants(self.participants)
        if (
            round_number == latest
            and self.messages.moderator_message(round_number) is None
            and self.analysis.get(round_number) is None
        ):
            enabled_models = {p.model_id for p in enabled}
            enabled_ids = {p.id for p in enabled}
            if all(
                m.model_id in enabled_models if m.model_id else m.participant_id in enabled_ids
                for m in answered
            ):
                return enabled

        by_id = {p.id: p for p in self.participants}
        roster = []
        for message in answered:
            known = by_id.get(message.participant_id)
            if known is not None:
                roster.append(replace(known, priority=message.participant_index))
            else:
                roster.append(Participant(
                    id=message.participant_id or message.id,
                    model_id=message.model_id or "",
                    priority=message.participant_index,
                ))
        return roster

    def _continue_incomplete_round(self, round_number: int) -> List:
        """Pick up the latest round when it was interrupted with no stream to re-attach.

        Starts the first participant that never answered, or, once every
        participant answered, the moderator or analysis that never ran.
        """
        if self.is_stopped(round_number) or self.is_streaming or self.has_early_optimistic_message:
            return []
        if self.analysis.get(round_number) is not None:
            return []
        user_message = next(
            (m for m in self.messages.for_round(round_number) if m.role == MessageRole.USER), None
        )
        if user_message is None or user_message.is_optimistic:
            return []

        roster = self._rosters[round_number]
        if not roster:
            return []
        moderator = self.messages.moderator_message(round_number)
        if moderator is None and [p.id for p in roster] != [p.id for p in enabled_participants(self.participants)]:
            logger.info(f"Participants changed since round {round_number}; leaving it as loaded")
            return []
        self.sequencer.start_round(self.thread.id, round_number, roster, start_index=len(roster))
        next_index = self.sequencer.next_unanswered(0)
        if next_index is not None:
            if not self.resumption.mark_resumption_attempted(round_number, next_index):
                self._note_duplicate("resumption", round_number)
                return []
            logger.info(f"Round {round_number} is incomplete; starting participant {next_index}")
            self.sequencer.current_index = next_index
            self.pending_message = user_message.text
            self.expected_participant_ids = [p.id for p in roster]
            if self.pre_search.is_blocking(round_number):
                self._set_phase(round_number, RoundPhase.AWAITING_PRE_SEARCH)
                return []
            return self._start_participants(round_number, start_index=next_index)

        if not self.is_round_complete(round_number):
            return []
        if moderator is None or not self.settings.moderator_enabled:
            logger.info(f"Round {round_number} participants are done; resuming with the next phase")
            return self._participants_complete_effects(round_number)
        if moderator.is_streaming:
            return []
        self._set_phase(round_number, RoundPhase.AWAITING_ANALYSIS)
        return self._maybe_trigger_analysis(round_number)

    def _resume(self, round_number: int, participant_index: int) -> List:
        if not self.resumption.mark_resumption_attempted(round_number, participant_index):
            self._note_duplicate("resumption", round_number)
            return []
        roster = self._rosters[round_number]
        self.sequencer.start_round(self.thread.id, round_number, roster, start_index=participant_index)
        self._set_phase(round_number, RoundPhase.STREAMING_PARTICIPANTS)
        user_message = next(
            (m for m in self.messages.for_round(round_number) if m.role == MessageRole.USER), None
        )
        self.pending_message = user_message.text if user_message else ""
        self.expected_participant_ids = [p.id for p in roster]
        self.set_streaming(True)
        message = self.sequencer.begin_turn(participant_index)
        return [ResumeParticipantStream(round_number, participant_index, message.id)]

    def apply_thread_update(self, thread: Thread) -> bool:
        """Replace thread metadata (slug, title, mode) without touching round state."""
        if self.thread is not None and thread.id != self.thread.id:
            logger.warning(f"Ignoring update for thread {thread.id}; loaded thread is {self.thread.id}")
            return False
        self.thread = thread
        return True

    def apply_participants(self, participants: Sequence[Participant]) -> None:
        """Replace the roster; rounds already started keep their own snapshot."""
        self.participants = reindex(sort_by_priority(participants))

    # ------------------------------------------------------------------
    # Submission protocol

    def begin_submission(self, content: str, now: Optional[datetime] = None) -> Message:
        """Insert the optimistic user message of a new round.

        Raises:
            RoundError: If no thread is loaded or no participant is enabled
            RoundInProgressError: If a round is still running
        """
        if self.thread is None:
            raise RoundError("Cannot submit without a loaded thread")
        if not enabled_participants(self.participants):
            raise RoundError("Cannot submit without an enabled participant")
        if self.has_early_optimistic_message or self.phase.blocks_submission or self.is_streaming:
            raise RoundInProgressError(f"Round {self.current_round} is still running")

        round_number = self.messages.next_round_number()
        message = Message(
            id=optimistic_user_message_id(round_number, now),
            role=MessageRole.USER,
            round_number=round_number,
            parts=[MessagePart(text=content)],
            is_optimistic=True,
            created_at=now or utcnow(),
        )
        self.messages.upsert(message)
        self.has_early_optimistic_message = True
        self._submission_round = round_number
        self._submission_content = content
        self._optimistic_message_id = message.id
        return message

    def promote_submission(self) -> Transition:
        """Turn the optimistic message into the running round.

        Must be called after any pending configuration update resolved.

        Raises:
            InvariantViolationError: If there is no optimistic message or a
                configuration update is still pending
        """
        if not self.has_early_optimistic_message:
            raise InvariantViolationError("No optimistic submission to promote")
        if self.config_patch_pending:
            raise InvariantViolationError("Cannot promote a submission while a configuration update is pending")

        round_number = self._submission_round
        content = self._submission_content
        roster = enabled_participants(self.participants)
        if not roster:
            raise RoundError("Cannot start a round without an enabled participant")

        self.pending_message = content
        self.expected_participant_ids = [p.id for p in roster]
        self.has_early_optimistic_message = False

        self.current_round = round_number
        self._rosters[round_number] = roster
        self.sequencer.start_round(self.thread.id, round_number, roster)

        effects = [
            SendUserMessage(
                round_number=round_number,
                content=content,
                participant_ids=tuple(self.expected_participant_ids),
                enable_web_search=self.thread.enable_web_search,
                optimistic_message_id=self._optimistic_message_id,
            )
        ]
        if round_number == 0 and not self.thread.is_ai_generated_title:
            effects.append(StartTitlePolling(self.thread.id))
        effects.extend(self._start_round_phases(round_number, content))
        return self._result(round_number, effects)

    def _start_round_phases(self, round_number: int, query: str) -> List:
        if self.thread.enable_web_search:
            if self.pre_search.create(self.thread.id, round_number, query) is not None:
                self._set_phase(round_number, RoundPhase.AWAITING_PRE_SEARCH)
                return [CreatePreSearch(round_number, query)]
            self._note_duplicate("pre_search", round_number)
        if self.pre_search.is_blocking(round_number):
            self._set_phase(round_number, RoundPhase.AWAITING_PRE_SEARCH)
            return []
        return self._start_participants(round_number)

    def _start_participants(self, round_number: int, start_index: int = 0) -> List:
        self._set_phase(round_number, RoundPhase.STREAMING_PARTICIPANTS)
        self.set_streaming(True)
        message = self.sequencer.begin_turn(start_index)
        participant = self.sequencer.participant_at(start_index)
        return [StreamParticipant(round_number, start_index, participant.id, message.id)]

    def confirm_user_message(self, message: Message) -> None:
        """Replace the optimistic user message with the backend-created one."""
        if self._optimistic_message_id is not None and message.round_number != self._submission_round:
            logger.warning(
                f"Backend assigned round {message.round_number} to a message submitted "
                f"for round {self._submission_round}"
            )
        self.messages.replace(self._optimistic_message_id or message.id, message)
        self._optimistic_message_id = None

    def set_streaming(self, value: bool) -> bool:
        """Apply an external streaming signal.

        A signal that would turn streaming on while the optimistic message is
        not promoted yet is withheld.

        Returns:
            True if the flag was applied
        """
        if value and self.has_early_optimistic_message and self.pending_message is None:
            logger.debug("Withholding streaming flag until the optimistic message is promoted")
            return False
        self.is_streaming = value
        self.check_invariants()
        return True

    def on_resumed_stream_detected(self, message: Message) -> bool:
        """Process a message from a stream detected as still running.

        Returns:
            True if the streaming flag was applied, False if it was withheld
        """
        self.messages.upsert(message)
        return self.set_streaming(True)

    # ------------------------------------------------------------------
    # Pre-search

    def on_pre_search_update(
        self,
        round_number: int,
        status: PhaseStatus,
        search_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Transition:
        changed = self.pre_search.update_status(
            round_number, status, now=now, search_data=search_data, error_message=error_message,
        )
        failures = []
        if changed and status == PhaseStatus.FAILED:
            failures.append(PhaseFailure("pre_search", round_number, error_message or "Pre-search failed"))
        effects = self._maybe_start_participants(round_number)
        return self._result(round_number, effects, failures, changed=changed or bool(effects))

    def on_pre_search_record(self, record: PreSearch) -> Transition:
        """Merge a pre-search record returned by the backend."""
        stored = self.pre_search.add(record)
        effects = self._maybe_start_participants(record.round_number)
        return self._result(record.round_number, effects, changed=stored or bool(effects))

    def on_pre_search_activity(self, round_number: int, now: Optional[datetime] = None) -> None:
        self.pre_search.record_activity(round_number, now)

    def sweep_stuck_pre_searches(self, now: Optional[datetime] = None) -> List[Transition]:
        """Force-complete idle pre-searches and unblock their rounds."""
        return [
            self._result(round_number, self._maybe_start_participants(round_number))
            for round_number in self.pre_search.sweep_stuck(now)
        ]

    def _maybe_start_participants(self, round_number: int) -> List:
        if (
            self.phase_of(round_number) != RoundPhase.AWAITING_PRE_SEARCH
            or self.is_stopped(round_number)
            or self.pre_search.is_blocking(round_number)
        ):
            return []
        return self._start_participants(round_number, start_index=self.sequencer.current_index or 0)

    # ------------------------------------------------------------------
    # Participants

    def on_participant_chunk(self, round_number: int, participant_index: int, text: str) -> bool:
        if round_number != self.sequencer.round_number or self.is_stopped(round_number):
            return False
        self.sequencer.append_chunk(participant_index, text)
        return True

    def on_participant_finished(
        self,
        round_number: int,
        participant_index: int,
        finish_reason: Any,
        text: Optional[str] = None,
        usage: Optional[Dict[str, Any]] = None,
        resumed: bool = False,
    ) -> Transition:
        """Finalize a participant turn and move the round forward.

        A finish that arrives after the round was stopped is recorded on the
        message but triggers nothing.
        """
        if round_number != self.sequencer.round_number:
            logger.warning(f"Ignoring finish for round {round_number}; sequencing round {self.sequencer.round_number}")
            return self._noop(round_number)
        existing = self.messages.get(self.sequencer.message_id(participant_index))
        if existing is not None and existing.finish_reason is not None and not existing.is_streaming:
            logger.debug(f"Participant {participant_index} of round {round_number} already finished")
            return self._noop(round_number)

        next_index = self.sequencer.finish_turn(participant_index, finish_reason, text=text, usage=usage)
        if resumed:
            next_index = self.sequencer.next_unanswered(self.resumption.handle_resumed_stream_complete(
                round_number, participant_index, self.sequencer.expected_count,
            ))
            self.sequencer.current_index = next_index
        if self.is_stopped(round_number):
            logger.info(f"Participant {participant_index} finished after round {round_number} was stopped")
            return self._result(round_number)

        if next_index is not None and self.phase_of(round_number) == RoundPhase.STREAMING_PARTICIPANTS:
            message = self.sequencer.begin_turn(next_index)
            participant = self.sequencer.participant_at(next_index)
            return self._result(
                round_number, [StreamParticipant(round_number, next_index, participant.id, message.id)]
            )
        if self.is_round_complete(round_number):
            return self._on_participants_complete(round_number)
        return self._result(round_number)

    def on_participant_failed(self, round_number: int, participant_index: int, error_message: str) -> Transition:
        """Finish a participant whose transport failed; the round continues."""
        transition = self.on_participant_finished(round_number, participant_index, FinishReason.FAILED)
        message = self.messages.get(self.sequencer.message_id(participant_index))
        if message is not None:
            message.metadata["error"] = error_message
        transition.failures.append(PhaseFailure("participant", round_number, error_message))
        return transition

    def on_resumption_failed(self, round_number: int, participant_index: int, error_message: str) -> Transition:
        """Continue the round after a resumed stream could not be re-attached."""
        self.resumption.handle_resumption_failure(round_number, participant_index)
        transition = self.on_participant_finished(round_number, participant_index, FinishReason.UNKNOWN)
        transition.failures.append(PhaseFailure("resumption", round_number, error_message))
        return transition

    def _on_participants_complete(self, round_number: int) -> Transition:
        return self._result(round_number, self._participants_complete_effects(round_number))

    def _participants_complete_effects(self, round_number: int) -> List:
        self.is_streaming = False
        self.pending_message = None
        if self.settings.moderator_enabled:
            self._set_phase(round_number, RoundPhase.AWAITING_MODERATOR)
            return self._maybe_trigger_moderator(round_number)
        self._set_phase(round_number, RoundPhase.AWAITING_ANALYSIS)
        return self._maybe_trigger_analysis(round_number)

    # ------------------------------------------------------------------
    # Moderator

    def _maybe_trigger_moderator(self, round_number: int) -> List:
        message_id = moderator_message_id(self.thread.id, round_number)
        round_complete = self.is_round_complete(round_number)
        stopped = self.is_stopped(round_number)
        if self.moderator.try_trigger(message_id, round_number, round_complete=round_complete, stopped=stopped):
            self.messages.upsert(Message(
                id=message_id,
                role=MessageRole.ASSISTANT,
                round_number=round_number,
                parts=[MessagePart(text="", state=PART_STATE_STREAMING)],
                is_moderator=True,
            ))
            self._set_phase(round_number, RoundPhase.STREAMING_MODERATOR)
            return [StreamModerator(round_number, message_id, tuple(self._completed_message_ids(round_number)))]
        if round_complete and not stopped:
            self._note_duplicate("moderator", round_number)

        existing = self.messages.moderator_message(round_number)
        if existing is not None and not existing.is_streaming and not self.is_stopped(round_number):
            self._set_phase(round_number, RoundPhase.AWAITING_ANALYSIS)
            return self._maybe_trigger_analysis(round_number)
        return []

    def on_moderator_partial(self, round_number: int, delta: Optional[Dict[str, Any]]) -> bool:
        """Fold a partial moderator object into the moderator message.

        Returns:
            True if the accumulated payload is displayable
        """
        message = self.messages.moderator_message(round_number)
        if message is None or self.is_stopped(round_number):
            return False
        payload = self.moderator.apply_partial(round_number, delta)
        if not is_displayable(payload):
            return False
        message.parts = [MessagePart(text=payload.summary, state=PART_STATE_STREAMING)]
        message.metadata["moderator"] = payload.to_dict()
        return True

    def on_moderator_finished(
        self,
        round_number: int,
        document: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Transition:
        """Finalize the moderator message and move on to analysis.

        A moderator failure is recorded on its message; the round still
        proceeds to analysis.
        """
        message = self.messages.moderator_message(round_number)
        if message is None or not message.is_streaming:
            return self._noop(round_number)

        failures = []
        if error is None:
            try:
                payload = self.moderator.finish(round_number, document)
                message.parts = [MessagePart(text=payload.summary, state=PART_STATE_DONE)]
                message.metadata["moderator"] = payload.to_dict()
                message.finish_reason = FinishReason.STOP
            except AnalysisParseError as e:
                error = str(e)
        if error is not None:
            self.moderator.discard(round_number)
            for part in message.parts:
                part.state = PART_STATE_DONE
            message.finish_reason = FinishReason.FAILED
            message.has_error = True
            message.metadata["error"] = error
            failures.append(PhaseFailure("moderator", round_number, error))

        if self.is_stopped(round_number):
            return self._result(round_number, failures=failures)
        self._set_phase(round_number, RoundPhase.AWAITING_ANALYSIS)
        return self._result(round_number, self._maybe_trigger_analysis(round_number), failures)

    # ------------------------------------------------------------------
    # Analysis

    def _maybe_trigger_analysis(self, round_number: int) -> List:
        if self.settings.moderator_enabled:
            moderator = self.messages.moderator_message(round_number)
            if moderator is None or moderator.is_streaming:
                return []
        stopped = self.is_stopped(round_number)
        record = self.analysis.try_create(
            self.thread.id,
            round_number,
            self._completed_message_ids(round_number),
            expected_count=len(self.roster(round_number)),
            stopped=stopped,
        )
        if record is None:
            if not stopped:
                self._note_duplicate("analysis", round_number)
            return []
        return [StreamAnalysis(round_number, record.id, tuple(record.participant_message_ids))]

    def on_analysis_started(self, round_number: int) -> bool:
        if self.is_stopped(round_number) or not self.analysis.mark_streaming(round_number):
            return False
        self._set_phase(round_number, RoundPhase.STREAMING_ANALYSIS)
        return True

    def on_analysis_partial(self, round_number: int, delta: Optional[Dict[str, Any]]) -> bool:
        """Fold a partial analysis object into the round's analysis.

        Returns:
            True if the accumulated analysis has displayable data
        """
        record = self.analysis.get(round_number)
        if record is None or record.status.is_terminal or self.is_stopped(round_number):
            return False
        value = self.analysis.apply_partial(round_number, delta)
        self._set_phase(round_number, RoundPhase.STREAMING_ANALYSIS)
        return has_analysis_data(value)

    def on_analysis_finished(
        self,
        round_number: int,
        document: Any = None,
        error: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Transition:
        record = self.analysis.get(round_number)
        if record is None or record.status.is_terminal:
            return self._noop(round_number)

        if error is not None:
            self.analysis.fail(round_number, error, now=now)
        else:
            self.analysis.complete(round_number, document, now=now)

        failures = []
        if record.status == PhaseStatus.FAILED:
            failures.append(PhaseFailure("analysis", round_number, record.error_message or "Analysis failed"))
        if not self.is_stopped(round_number):
            self._set_phase(round_number, RoundPhase.COMPLETE)
        if self.regenerating_round_number == round_number:
            self.is_regenerating = False
            self.regenerating_round_number = None
        return self._result(round_number, failures=failures)

    def retry_analysis(self, round_number: int) -> Transition:
        """Remove a failed analysis and attempt the round's analysis again."""
        if not self.analysis.retry(round_number):
            return self._noop(round_number)
        self._set_phase(round_number, RoundPhase.AWAITING_ANALYSIS)
        return self._result(round_number, self._maybe_trigger_analysis(round_number))

    def is_analysis_complete(self, round_number: Optional[int] = None) -> bool:
        round_number = self.current_round if round_number is None else round_number
        if round_number is None:
            return False
        record = self.analysis.get(round_number)
        return record is not None and record.status.is_terminal

    # ------------------------------------------------------------------
    # Stop and regeneration

    def stop(self) -> Transition:
        """Stop the running round.

        Late completions for a stopped round never trigger the moderator or
        the analysis.
        """
        if self.has_early_optimistic_message:
            self.has_early_optimistic_message = False
            self.messages.remove(self._optimistic_message_id)
            self._optimistic_message_id = None
            self._submission_round = None
            self._submission_content = None

        round_number = self.current_round
        if round_number is None or self.phase_of(round_number).is_terminal:
            self.is_streaming = False
            return self._noop(round_number)

        self.stopped_rounds.add(round_number)
        self._set_phase(round_number, RoundPhase.STOPPED)
        self.is_streaming = False
        self.pending_message = None
        self.sequencer.current_index = None
        self.moderator.discard(round_number)
        for message in self.messages.for_round(round_number):
            for part in message.parts:
                part.state = PART_STATE_DONE
        self.analysis.fail(round_number, STOPPED_BY_USER)
        if self.regenerating_round_number == round_number:
            self.is_regenerating = False
            self.regenerating_round_number = None
        logger.info(f"Round {round_number} stopped")
        return self._result(round_number, [AbortRound(round_number)])

    def regenerate_round(self, round_number: int) -> Transition:
        """Run the latest round again from its participant phase.

        Only this round's guards, responses and records are discarded.

        Raises:
            RoundError: If round_number is not the latest round
            RoundInProgressError: If the round is still running
        """
        if round_number != self.messages.last_round_number():
            raise RoundError(f"Only the latest round can be regenerated, not round {round_number}")
        if self.phase_of(round_number).blocks_submission or self.has_early_optimistic_message:
            raise RoundInProgressError(f"Round {round_number} is still running")

        user_message = next(
            (m for m in self.messages.for_round(round_number) if m.role == MessageRole.USER), None
        )
        content = user_message.text if user_message else ""

        self.registry.clear_round(round_number)
        self.messages.remove_round_responses(round_number)
        self.pre_search.remove(round_number)
        self.analysis.remove(round_number)
        self.moderator.discard(round_number)
        self.stopped_rounds.discard(round_number)

        self.is_regenerating = True
        self.regenerating_round_number = round_number
        roster = enabled_participants(self.participants)
        self.pending_message = content
        self.expected_participant_ids = [p.id for p in roster]
        self.current_round = round_number
        self._rosters[round_number] = roster
        self.sequencer.start_round(self.thread.id, round_number, roster)
        self._set_phase(round_number, RoundPhase.IDLE)
        return self._result(round_number, self._start_round_phases(round_number, content))

    # ------------------------------------------------------------------

    def snapshot(self) -> RoundSnapshot:
        return RoundSnapshot(
            thread=copy.deepcopy(self.thread),
            participants=tuple(copy.deepcopy(self.participants)),
            current_round=self.current_round,
            phase=self.phase,
            phases=dict(self.phases),
            is_streaming=self.is_streaming,
            pending_message=self.pending_message,
            expected_participant_ids=tuple(self.expected_participant_ids),
            has_early_optimistic_message=self.has_early_optimistic_message,
            current_participant_index=self.sequencer.current_index,
            messages=tuple(copy.deepcopy(self.messages.ordered())),
            pre_searches=tuple(copy.deepcopy(self.pre_search.records())),
            analyses=tuple(copy.deepcopy(self.analysis.records())),
            stopped_rounds=frozenset(self.stopped_rounds),
            is_regenerating=self.is_regenerating,
            regenerating_round_number=self.regenerating_round_number,
        )
