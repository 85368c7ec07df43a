# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Asynchronous driver of the round state machine.

The orchestrator is owned by its caller (one per chat context); there is no
module-level instance. It feeds transport events into the synchronous state
machine, executes the effects each transition returns, and notifies
subscribers with an immutable snapshot after every applied change.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Set

from roundtable_config import EngineSettings, load_engine_settings
from roundtable_error_reporting import ErrorReporter, create_error_reporter
from roundtable_logging import Logger, create_logger
from roundtable_metrics import MetricsCollector, NoOpMetricsCollector

from .animations import AnimationBarrier
from .effects import (
    AbortRound,
    CreatePreSearch,
    Effect,
    ResumeParticipantStream,
    SendUserMessage,
    StartTitlePolling,
    StreamAnalysis,
    StreamModerator,
    StreamParticipant,
    Transition,
)
from .exceptions import TransportError
from .models import (
    Analysis,
    FinishReason,
    Message,
    Participant,
    PhaseStatus,
    PreSearch,
    RoundPhase,
    SessionPreferences,
    StreamResumptionState,
    Thread,
)
from .reset import ResetController
from .state_machine import RoundSnapshot, RoundStateMachine
from .transports import RoundBackend, StreamFinish, TextDelta

Listener = Callable[[RoundSnapshot], None]

_TRIGGER_PHASES = {
    CreatePreSearch: "pre_search",
    StreamParticipant: "participant",
    ResumeParticipantStream: "participant",
    StreamModerator: "moderator",
    StreamAnalysis: "analysis",
}


@dataclass(frozen=True)
class NavigationSignal:
    """Inputs other code uses to decide when to navigate to the thread page."""

    analysis_complete: bool
    title_ready: bool


class RoundOrchestrator:
    """Runs rounds of one chat context against a backend.

    Attributes:
        machine: Current state machine; replaced on every reset
        preferences: Form preferences that survive thread navigation
        draft_text: Unsent input text
        title_ready: Whether the AI-generated title/slug has arrived
        animations: Barrier the analysis stream waits on
    """

    def __init__(
        self,
        backend: RoundBackend,
        settings: Optional[EngineSettings] = None,
        logger: Optional[Logger] = None,
        metrics: Optional[MetricsCollector] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        self.backend = backend
        self.settings = settings or load_engine_settings()
        self.logger = logger or create_logger(name="roundtable.rounds")
        self.metrics = metrics or NoOpMetricsCollector()
        self.error_reporter = error_reporter or create_error_reporter()

        self.machine = RoundStateMachine(self.settings)
        self.preferences = SessionPreferences()
        self.draft_text = ""
        self.title_ready = False
        self.animations = AnimationBarrier(self.settings.animation_timeout_ms / 1000)
        self.reset_controller = ResetController(self)

        self._listeners: List[Listener] = []
        self._round_tasks: Dict[int, Set[asyncio.Task]] = {}
        self._background_tasks: Set[asyncio.Task] = set()
        self._config_patch: Optional[asyncio.Task] = None
        self._sweeper: Optional[asyncio.Task] = None
        self._round_started_at: Dict[int, float] = {}

    # ------------------------------------------------------------------
    # Snapshot and subscriptions

    def snapshot(self) -> RoundSnapshot:
        return self.machine.snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.machine.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self.logger.exception("Snapshot listener failed")

    def navigation_signal(self) -> NavigationSignal:
        return NavigationSignal(
            analysis_complete=self.machine.is_analysis_complete(),
            title_ready=self.title_ready,
        )

    # ------------------------------------------------------------------
    # Lifecycle

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
        """Mount a thread, re-attaching to an in-flight stream if one is still valid.

        Must be called from a running event loop.
        """
        self.title_ready = thread.is_ai_generated_title
        transition = self.machine.load(
            thread, participants, messages, pre_searches, analyses, resumption_state, now=now,
        )
        self.logger.info(
            "Thread loaded",
            thread_id=thread.id,
            rounds=0 if transition.round_number is None else transition.round_number + 1,
            resuming=any(isinstance(e, ResumeParticipantStream) for e in transition.effects),
        )
        self._apply(transition)
        self.start_pre_search_sweeper()
        return transition

    def start_pre_search_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.settings.pre_search_sweep_interval_seconds)
            self.sweep_stuck_pre_searches()

    def sweep_stuck_pre_searches(self, now: Optional[datetime] = None) -> List[Transition]:
        transitions = self.machine.sweep_stuck_pre_searches(now)
        for transition in transitions:
            self.metrics.increment("pre_search_timeouts_total")
            self.logger.warning("Pre-search timed out", round_number=transition.round_number)
            self._apply(transition)
        return transitions

    async def close(self) -> None:
        """Cancel every task owned by this orchestrator."""
        tasks = self.cancel_all_tasks()
        if self._sweeper is not None:
            self._sweeper.cancel()
            tasks.append(self._sweeper)
            self._sweeper = None
        await asyncio.gather(*tasks, return_exceptions=True)

    def cancel_all_tasks(self) -> List[asyncio.Task]:
        """Cancel round, background and configuration tasks.

        Returns:
            The cancelled tasks
        """
        tasks = [t for round_tasks in self._round_tasks.values() for t in round_tasks]
        tasks.extend(self._background_tasks)
        if self._config_patch is not None:
            tasks.append(self._config_patch)
        for task in tasks:
            task.cancel()
        self._round_tasks = {}
        self._background_tasks = set()
        self._config_patch = None
        return tasks

    async def wait_idle(self) -> None:
        """Wait until no round or background task is running."""
        while True:
            tasks = [t for round_tasks in self._round_tasks.values() for t in round_tasks if not t.done()]
            tasks.extend(t for t in self._background_tasks if not t.done())
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # User actions

    def update_configuration(
        self,
        participants: Optional[Sequence[Participant]] = None,
        mode: Optional[str] = None,
        enable_web_search: Optional[bool] = None,
    ) -> asyncio.Task:
        """Send a configuration update; the next submission waits for it."""
        self.machine.config_patch_pending = True
        task = asyncio.create_task(self._patch_configuration(participants, mode, enable_web_search))
        self._config_patch = task
        return task

    async def _patch_configuration(self, participants, mode, enable_web_search) -> None:
        machine = self.machine
        task = asyncio.current_task()
        try:
            thread, roster = await self.backend.update_thread_configuration(
                machine.thread.id, participants=participants, mode=mode, enable_web_search=enable_web_search,
            )
            machine.apply_thread_update(thread)
            machine.apply_participants(roster)
        except TransportError as e:
            self.logger.error("Configuration update failed", thread_id=machine.thread.id, error=str(e))
            self.error_reporter.report(e, {"thread_id": machine.thread.id, "operation": "update_configuration"})
        finally:
            if self._config_patch is task:
                machine.config_patch_pending = False
                self._config_patch = None
        self._notify()

    async def submit(self, content: str) -> Optional[Transition]:
        """Submit a user message as a new round.

        Returns:
            The promotion transition, or None if the submission was stopped
            while waiting for a configuration update
        """
        machine = self.machine
        machine.begin_submission(content)
        self._notify()

        patch = self._config_patch
        if patch is not None and not patch.done():
            self.logger.debug("Submission waiting for configuration update")
            await asyncio.wait({patch})
        if machine is not self.machine or not machine.has_early_optimistic_message:
            self.logger.info("Submission cancelled before the round started")
            return None

        transition = machine.promote_submission()
        self.draft_text = ""
        self._round_started_at[transition.round_number] = time.monotonic()
        self.logger.info(
            "Round submitted",
            thread_id=machine.thread.id,
            round_number=transition.round_number,
            participants=len(machine.expected_participant_ids),
            web_search=machine.thread.enable_web_search,
        )
        self._apply(transition)
        return transition

    def stop(self) -> Transition:
        transition = self.machine.stop()
        if transition.changed:
            self.metrics.increment("rounds_stopped_total")
            self.logger.info("Round stopped", round_number=transition.round_number)
        self._apply(transition)
        return transition

    def regenerate_round(self, round_number: int) -> Transition:
        transition = self.machine.regenerate_round(round_number)
        self._round_started_at[round_number] = time.monotonic()
        self.logger.info("Regenerating round", round_number=round_number)
        self._apply(transition)
        return transition

    def retry_analysis(self, round_number: int) -> Transition:
        transition = self.machine.retry_analysis(round_number)
        self._apply(transition)
        return transition

    def register_animation(self, key) -> None:
        self.animations.register(key)

    def complete_animation(self, key) -> None:
        self.animations.complete(key)

    def reset_to_overview(self) -> None:
        self.reset_controller.reset_to_overview()
        self._notify()

    def reset_for_thread_navigation(self) -> None:
        self.reset_controller.reset_for_thread_navigation()
        self._notify()

    # ------------------------------------------------------------------
    # Transition application

    def _apply(self, transition: Transition) -> None:
        for phase in transition.duplicates:
            self.metrics.increment("round_duplicate_triggers_total", tags={"phase": phase})
        for failure in transition.failures:
            self.metrics.increment("round_phase_failures_total", tags={"phase": failure.phase})
            self.logger.warning(
                "Phase failed", phase=failure.phase, round_number=failure.round_number, error=failure.message,
            )
            self.error_reporter.capture_message(
                f"{failure.phase} failed: {failure.message}",
                level="warning",
                context={"round_number": failure.round_number, "phase": failure.phase},
            )
        if transition.changed and transition.round_number is not None:
            self.metrics.increment("round_phase_transitions_total", tags={"phase": transition.phase.value})
            if transition.phase == RoundPhase.COMPLETE and transition.round_number in self._round_started_at:
                started = self._round_started_at.pop(transition.round_number)
                self.metrics.observe("round_duration_seconds", time.monotonic() - started)

        for effect in transition.effects:
            self._dispatch(effect)
        self._notify()

    def _dispatch(self, effect: Effect) -> None:
        phase = _TRIGGER_PHASES.get(type(effect))
        if phase is not None:
            self.metrics.increment("round_triggers_total", tags={"phase": phase})

        if isinstance(effect, AbortRound):
            for task in self._round_tasks.pop(effect.round_number, set()):
                task.cancel()
        elif isinstance(effect, StartTitlePolling):
            task = asyncio.create_task(self._poll_title(effect))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)
        elif isinstance(effect, SendUserMessage):
            self._spawn(effect.round_number, self._send_user_message(effect))
        elif isinstance(effect, CreatePreSearch):
            self._spawn(effect.round_number, self._run_pre_search(effect))
        elif isinstance(effect, StreamParticipant):
            self._spawn(effect.round_number, self._run_participant(effect))
        elif isinstance(effect, ResumeParticipantStream):
            self._spawn(effect.round_number, self._run_resumed_participant(effect))
        elif isinstance(effect, StreamModerator):
            self._spawn(effect.round_number, self._run_moderator(effect))
        elif isinstance(effect, StreamAnalysis):
            self._spawn(effect.round_number, self._run_analysis(effect))
        else:
            raise TypeError(f"Unknown effect: {effect!r}")

    def _spawn(self, round_number: int, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        round_tasks = self._round_tasks.setdefault(round_number, set())
        round_tasks.add(task)
        task.add_done_callback(round_tasks.discard)
        return task

    def _apply_if_current(self, machine: RoundStateMachine, transition: Transition) -> None:
        if machine is self.machine:
            self._apply(transition)

    # ------------------------------------------------------------------
    # Effect runners

    async def _send_user_message(self, effect: SendUserMessage) -> None:
        machine = self.machine
        try:
            message = await self.backend.submit_message(
                machine.thread.id,
                effect.round_number,
                effect.content,
                list(effect.participant_ids),
                effect.enable_web_search,
            )
        except TransportError as e:
            self.logger.error("Submitting message failed", round_number=effect.round_number, error=str(e))
            self.error_reporter.report(e, {"round_number": effect.round_number, "operation": "submit_message"})
            if machine is self.machine:
                self.stop()
            return
        if machine is self.machine:
            machine.confirm_user_message(message)
            self._notify()

    async def _run_pre_search(self, effect: CreatePreSearch) -> None:
        machine = self.machine
        thread_id = machine.thread.id
        round_number = effect.round_number
        interval = self.settings.pre_search_poll_interval_ms / 1000
        try:
            record = await self.backend.create_pre_search(thread_id, round_number, effect.query)
            self._apply_if_current(machine, machine.on_pre_search_record(record))
            while machine is self.machine and machine.pre_search.is_blocking(round_number):
                record = await self.backend.poll_pre_search(thread_id, round_number)
                if record.status == PhaseStatus.STREAMING:
                    machine.on_pre_search_activity(round_number)
                self._apply_if_current(machine, machine.on_pre_search_update(
                    round_number, record.status, search_data=record.search_data, error_message=record.error_message,
                ))
                if machine.pre_search.is_blocking(round_number):
                    await asyncio.sleep(interval)
        except TransportError as e:
            self._apply_if_current(machine, machine.on_pre_search_update(
                round_number, PhaseStatus.FAILED, error_message=str(e),
            ))

    async def _consume_participant(self, machine: RoundStateMachine, events, round_number: int,
                                   participant_index: int, resumed: bool) -> None:
        async for event in events:
            if machine is not self.machine:
                return
            if isinstance(event, TextDelta):
                if machine.on_participant_chunk(round_number, participant_index, event.text):
                    self._notify()
            elif isinstance(event, StreamFinish):
                self._apply(machine.on_participant_finished(
                    round_number, participant_index, event.finish_reason,
                    text=event.text, usage=event.usage, resumed=resumed,
                ))
                return
        self._apply_if_current(machine, machine.on_participant_finished(
            round_number, participant_index, FinishReason.UNKNOWN, resumed=resumed,
        ))

    async def _run_participant(self, effect: StreamParticipant) -> None:
        machine = self.machine
        participant = machine.sequencer.participant_at(effect.participant_index)
        events = self.backend.stream_participant(
            machine.thread.id, effect.round_number, effect.participant_index, participant,
        )
        try:
            await self._consume_participant(machine, events, effect.round_number, effect.participant_index, False)
        except TransportError as e:
            self.error_reporter.report(e, {
                "round_number": effect.round_number,
                "participant_index": effect.participant_index,
            })
            self._apply_if_current(machine, machine.on_participant_failed(
                effect.round_number, effect.participant_index, str(e),
            ))

    async def _run_resumed_participant(self, effect: ResumeParticipantStream) -> None:
        machine = self.machine
        events = self.backend.resume_participant_stream(
            machine.thread.id, effect.round_number, effect.participant_index,
        )
        try:
            await self._consume_participant(machine, events, effect.round_number, effect.participant_index, True)
            self.metrics.increment("stream_resumptions_total", tags={"outcome": "resumed"})
        except TransportError as e:
            self.metrics.increment("stream_resumptions_total", tags={"outcome": "failed"})
            self._apply_if_current(machine, machine.on_resumption_failed(
                effect.round_number, effect.participant_index, str(e),
            ))

    async def _run_moderator(self, effect: StreamModerator) -> None:
        machine = self.machine
        try:
            async for partial in self.backend.stream_moderator(
                machine.thread.id, effect.round_number, list(effect.participant_message_ids),
            ):
                if machine is not self.machine:
                    return
                if machine.on_moderator_partial(effect.round_number, partial):
                    self._notify()
        except TransportError as e:
            self._apply_if_current(machine, machine.on_moderator_finished(effect.round_number, error=str(e)))
            return
        self._apply_if_current(machine, machine.on_moderator_finished(effect.round_number))

    async def _run_analysis(self, effect: StreamAnalysis) -> None:
        machine = self.machine
        await self.animations.wait()
        if machine is not self.machine or not machine.on_analysis_started(effect.round_number):
            return
        self._notify()
        try:
            async for partial in self.backend.stream_analysis(
                machine.thread.id, effect.round_number, list(effect.participant_message_ids),
            ):
                if machine is not self.machine:
                    return
                if machine.on_analysis_partial(effect.round_number, partial):
                    self._notify()
        except TransportError as e:
            self._apply_if_current(machine, machine.on_analysis_finished(effect.round_number, error=str(e)))
            return
        self._apply_if_current(machine, machine.on_analysis_finished(effect.round_number))

    async def _poll_title(self, effect: StartTitlePolling) -> None:
        machine = self.machine
        interval = self.settings.title_poll_interval_ms / 1000
        for attempt in range(self.settings.title_poll_max_attempts):
            try:
                status = await self.backend.poll_title(effect.thread_id)
            except TransportError as e:
                self.logger.warning("Title poll failed", attempt=attempt, error=str(e))
                status = None
            if machine is not self.machine:
                return
            if status is not None and status.ready:
                thread = machine.thread
                machine.apply_thread_update(replace(
                    thread,
                    title=status.title or thread.title,
                    slug=status.slug or thread.slug,
                    is_ai_generated_title=True,
                ))
                self.title_ready = True
                self.logger.info("Title ready", thread_id=thread.id, slug=machine.thread.slug)
                self._notify()
                return
            await asyncio.sleep(interval)
        self.logger.warning("Title not ready after polling", thread_id=effect.thread_id)
