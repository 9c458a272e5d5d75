"""Weighted multi-step progress tracking.

This module models a run as ordered named steps with relative weights.
Each step moves through an explicit state machine, every transition is
logged and published to subscribers, and the tracker renders both a text
report and a JSON payload for durable summaries.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Callable, Literal

from core.errors import ProgressStateError
from core.formatting import format_duration, format_timestamp
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)

StepState = Literal["pending", "running", "completed", "failed", "skipped"]
ALLOWED_STEP_TRANSITIONS: dict[StepState, tuple[StepState, ...]] = {
    "pending": ("running", "skipped"),
    "running": ("completed", "failed"),
    "completed": (),
    "failed": (),
    "skipped": (),
}


@dataclass(frozen=True)
class ProgressStep:
    """Snapshot of one tracked step."""

    name: str
    description: str
    weight: int
    state: StepState = "pending"
    started_at: str | None = None
    finished_at: str | None = None
    duration_seconds: float | None = None
    error: str | None = None
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class ProgressEvent:
    """One published step transition."""

    step: ProgressStep
    percentage: float
    message: str


ProgressListener = Callable[[ProgressEvent], None]


def validate_step_transition(current: StepState, next_state: StepState) -> None:
    """Validate one step transition against allowed state machine edges."""
    allowed_states = ALLOWED_STEP_TRANSITIONS[current]
    if next_state not in allowed_states:
        raise ProgressStateError(
            f"Invalid progress step transition {current!r} -> {next_state!r}. "
            f"Allowed: {', '.join(allowed_states) or 'none'}."
        )


class ProgressTracker:
    """Track weighted step progress for one run."""

    def __init__(self, title: str) -> None:
        self.title = title
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self._steps: dict[str, ProgressStep] = {}
        self._started_monotonic: dict[str, float] = {}
        self._listeners: list[ProgressListener] = []
        self._created_at = format_timestamp()
        self._created_monotonic = time.monotonic()

    def add_step(self, name: str, description: str, weight: int = 1) -> None:
        """Register one step before the run starts.

        Raises:
            ProgressStateError: If the name is already registered or weight is not positive.
        """
        if name in self._steps:
            raise ProgressStateError(f"Progress step {name!r} is already registered.")
        if weight < 1:
            raise ProgressStateError(
                f"Progress step {name!r} needs a positive weight, got {weight}."
            )
        self._steps[name] = ProgressStep(name=name, description=description, weight=weight)

    def subscribe(self, listener: ProgressListener) -> None:
        """Receive a ProgressEvent for every step transition."""
        self._listeners.append(listener)

    def start_step(self, name: str) -> None:
        """Move one step from pending to running."""
        step = self._transition(name, "running", started_at=format_timestamp())
        self._started_monotonic[name] = time.monotonic()
        self._publish(step, f"Started: {step.description}")

    def complete_step(self, name: str, metadata: dict[str, object] | None = None) -> None:
        """Move one running step to completed, attaching optional metadata."""
        step = self._transition(
            name,
            "completed",
            finished_at=format_timestamp(),
            duration_seconds=self._elapsed(name),
            metadata=dict(metadata or {}),
        )
        self._publish(step, f"Completed: {step.description}")

    def fail_step(self, name: str, reason: str) -> None:
        """Move one running step to failed and record the reason as a run error."""
        step = self._transition(
            name,
            "failed",
            finished_at=format_timestamp(),
            duration_seconds=self._elapsed(name),
            error=reason,
        )
        self.errors.append(f"{step.description}: {reason}")
        self._publish(step, f"Failed: {step.description}")

    def skip_step(self, name: str, reason: str) -> None:
        """Move one pending step to skipped; it no longer counts toward progress."""
        step = self._transition(name, "skipped", finished_at=format_timestamp(), error=reason)
        self._publish(step, f"Skipped: {step.description}")

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        _LOGGER.error("progress_error_recorded", tracker=self.title, message=message)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
        _LOGGER.warning("progress_warning_recorded", tracker=self.title, message=message)

    def step(self, name: str) -> ProgressStep:
        """Return the current snapshot of one step."""
        try:
            return self._steps[name]
        except KeyError as error:
            raise ProgressStateError(f"Unknown progress step {name!r}.") from error

    @property
    def steps(self) -> tuple[ProgressStep, ...]:
        return tuple(self._steps.values())

    @property
    def percentage(self) -> float:
        """Weighted share of completed steps, excluding skipped steps."""
        active_weight = sum(s.weight for s in self._steps.values() if s.state != "skipped")
        if active_weight == 0:
            return 100.0 if self._steps else 0.0
        completed_weight = sum(s.weight for s in self._steps.values() if s.state == "completed")
        return round(100.0 * completed_weight / active_weight, 1)

    @property
    def has_failures(self) -> bool:
        return any(step.state == "failed" for step in self._steps.values())

    @property
    def is_finished(self) -> bool:
        return all(step.state not in ("pending", "running") for step in self._steps.values())

    def state_counts(self) -> dict[str, int]:
        counts = {state: 0 for state in ALLOWED_STEP_TRANSITIONS}
        for step in self._steps.values():
            counts[step.state] += 1
        return counts

    def generate_report(self) -> str:
        """Render the tracker as stable multi-line text."""
        counts = self.state_counts()
        elapsed = time.monotonic() - self._created_monotonic
        lines = [
            f"=== {self.title} ===",
            f"started_at={self._created_at}",
            f"duration={format_duration(elapsed)}",
            f"progress={self.percentage:.1f}%",
            " ".join(f"{state}={count}" for state, count in counts.items()),
        ]
        for step in self._steps.values():
            lines.append(_render_step_line(step))
        if self.errors:
            lines.append("errors:")
            lines.extend(f"- {message}" for message in self.errors)
        if self.warnings:
            lines.append("warnings:")
            lines.extend(f"- {message}" for message in self.warnings)
        return "\n".join(lines)

    def to_payload(self) -> dict[str, object]:
        """Render the tracker as a JSON-serializable payload."""
        return {
            "title": self.title,
            "started_at": self._created_at,
            "percentage": self.percentage,
            "state_counts": self.state_counts(),
            "steps": [
                {
                    "name": step.name,
                    "description": step.description,
                    "weight": step.weight,
                    "state": step.state,
                    "started_at": step.started_at,
                    "finished_at": step.finished_at,
                    "duration_seconds": step.duration_seconds,
                    "error": step.error,
                    "metadata": step.metadata,
                }
                for step in self._steps.values()
            ],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }

    def _transition(self, name: str, next_state: StepState, **changes: object) -> ProgressStep:
        current = self.step(name)
        validate_step_transition(current.state, next_state)
        updated = replace(current, state=next_state, **changes)
        self._steps[name] = updated
        return updated

    def _elapsed(self, name: str) -> float:
        started = self._started_monotonic.get(name, time.monotonic())
        return round(time.monotonic() - started, 3)

    def _publish(self, step: ProgressStep, message: str) -> None:
        percentage = self.percentage
        _LOGGER.info(
            "progress_step_transition",
            tracker=self.title,
            step=step.name,
            state=step.state,
            percentage=percentage,
            error=step.error,
        )
        event = ProgressEvent(step=step, percentage=percentage, message=message)
        for listener in self._listeners:
            listener(event)


def _render_step_line(step: ProgressStep) -> str:
    duration = f" ({step.duration_seconds:.3f}s)" if step.duration_seconds is not None else ""
    line = f"[{step.state.upper()}] {step.name} {step.description}{duration}"
    if step.error:
        return f"{line} :: {step.error}"
    if step.metadata:
        details = " ".join(f"{key}={value}" for key, value in step.metadata.items())
        return f"{line} :: {details}"
    return line
