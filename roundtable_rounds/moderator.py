# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Moderator trigger and moderator payload handling."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .exceptions import AnalysisParseError
from .guards import MessageRoundGuard, RoundGuard
from .partial_object import PartialObjectReducer
from .schema_validator import validate_json

logger = logging.getLogger(__name__)

MODERATOR_METRICS = ("engagement", "insight", "balance", "clarity")

# Generation order of the payload fields; summary first so the earliest
# partial parse already has displayable text.
MODERATOR_FIELD_ORDER = ("summary", "metrics")


def _is_positive_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


@dataclass
class ModeratorMetrics:
    """Qualitative scores of a round, each 0-100."""

    engagement: Optional[float] = None
    insight: Optional[float] = None
    balance: Optional[float] = None
    clarity: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {name: getattr(self, name) for name in MODERATOR_METRICS}


@dataclass
class ModeratorPayload:
    """Moderator synthesis: a short summary plus round metrics."""

    summary: str = ""
    metrics: ModeratorMetrics = field(default_factory=ModeratorMetrics)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ModeratorPayload":
        """Build a payload from a possibly partial object, ignoring unknown or ill-typed fields."""
        data = data or {}
        summary = data.get("summary")
        raw_metrics = data.get("metrics") if isinstance(data.get("metrics"), dict) else {}
        metrics = ModeratorMetrics(**{
            name: raw_metrics[name]
            for name in MODERATOR_METRICS
            if isinstance(raw_metrics.get(name), (int, float)) and not isinstance(raw_metrics.get(name), bool)
        })
        return cls(summary=summary if isinstance(summary, str) else "", metrics=metrics)

    def to_dict(self) -> Dict[str, Any]:
        return {"summary": self.summary, "metrics": self.metrics.to_dict()}


def is_displayable(partial: Union[ModeratorPayload, Dict[str, Any], None]) -> bool:
    """Whether a (partial) moderator payload has anything worth showing.

    True if the summary has non-whitespace text or any metric is a finite
    number above zero. An all-zero metrics object is "no data yet".
    """
    if partial is None:
        return False
    if not isinstance(partial, ModeratorPayload):
        partial = ModeratorPayload.from_dict(partial)
    if partial.summary.strip():
        return True
    return any(_is_positive_number(getattr(partial.metrics, name)) for name in MODERATOR_METRICS)


def parse_moderator_payload(document: Dict[str, Any]) -> ModeratorPayload:
    """Validate a final moderator object.

    Raises:
        AnalysisParseError: If the object does not match the moderator schema
    """
    is_valid, errors = validate_json(document, "moderator")
    if not is_valid:
        raise AnalysisParseError(f"Invalid moderator payload: {'; '.join(errors)}", errors)
    return ModeratorPayload.from_dict(document)


class ModeratorTrigger:
    """Fires the moderator once per round and accumulates its partial payload."""

    def __init__(self, created_guard: RoundGuard, stream_guard: MessageRoundGuard):
        self._created_guard = created_guard
        self._stream_guard = stream_guard
        self._reducers: Dict[int, PartialObjectReducer] = {}

    def try_trigger(self, message_id: str, round_number: int, round_complete: bool, stopped: bool) -> bool:
        """Mark the moderator of a round as triggered.

        Args:
            message_id: Id the moderator message will have
            round_number: Round whose participants finished
            round_complete: Whether every enabled participant has finished
            stopped: Whether the user stopped this round

        Returns:
            True if the caller should open the moderator stream
        """
        if stopped or not round_complete:
            return False
        if not self._stream_guard.try_mark(message_id, round_number):
            logger.debug(f"Moderator for round {round_number} already triggered ({message_id})")
            return False
        self._created_guard.try_mark(round_number)
        self._reducers[round_number] = PartialObjectReducer()
        return True

    def apply_partial(self, round_number: int, delta: Optional[Dict[str, Any]]) -> ModeratorPayload:
        reducer = self._reducers.setdefault(round_number, PartialObjectReducer())
        return ModeratorPayload.from_dict(reducer.apply(delta))

    def current(self, round_number: int) -> Dict[str, Any]:
        reducer = self._reducers.get(round_number)
        return reducer.value if reducer else {}

    def finish(self, round_number: int, document: Optional[Dict[str, Any]] = None) -> ModeratorPayload:
        """Validate the final moderator object of a round.

        Args:
            round_number: Round whose moderator finished
            document: Final object; defaults to the accumulated partials

        Raises:
            AnalysisParseError: If the final object is invalid
        """
        reducer = self._reducers.pop(round_number, None)
        if document is None:
            document = reducer.value if reducer else {}
        return parse_moderator_payload(document)

    def discard(self, round_number: int) -> None:
        self._reducers.pop(round_number, None)
