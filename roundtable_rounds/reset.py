# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Reset of orchestrator state when the user leaves a thread."""

from typing import TYPE_CHECKING

from .state_machine import RoundStateMachine

if TYPE_CHECKING:
    from .orchestrator import RoundOrchestrator


class ResetController:
    """Discards thread-scoped state of an orchestrator in one synchronous step.

    Both reset modes cancel every transport task and swap in a brand-new
    state machine, which carries a brand-new guard registry. Nothing from
    the previous thread, including its guard sets, stays reachable from the
    orchestrator.
    """

    def __init__(self, orchestrator: "RoundOrchestrator"):
        self._orchestrator = orchestrator

    def _discard_thread_state(self) -> None:
        orchestrator = self._orchestrator
        orchestrator.cancel_all_tasks()
        orchestrator.animations.clear()
        orchestrator.machine = RoundStateMachine(orchestrator.settings)
        orchestrator.title_ready = False

    def reset_to_overview(self) -> None:
        """Full reset for the landing/overview context; the draft is cleared too."""
        self._discard_thread_state()
        self._orchestrator.draft_text = ""
        self._orchestrator.logger.info("Reset to overview")

    def reset_for_thread_navigation(self) -> None:
        """Reset between threads, keeping draft text and preferences."""
        self._discard_thread_state()
        self._orchestrator.logger.info("Reset for thread navigation")
