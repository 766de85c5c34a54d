"""Transition tables for cases, consultations and barrister onboarding.

Each table is total over its enum: every status has an entry, terminal
statuses map to an empty set.
"""
from typing import Dict, FrozenSet, Type
import enum

from advoqat.errors import InvalidTransitionError, ValidationError
from advoqat.models import (
    BarristerStatus, CaseStatus, ConsultationStatus, OnboardingStage
)


class StateMachine:
    """Validates edges of a status enum against a fixed transition table."""

    def __init__(self, name: str, enum_cls: Type[enum.Enum], transitions: Dict[enum.Enum, FrozenSet[enum.Enum]]):
        missing = set(enum_cls) - set(transitions)
        if missing:
            raise ValueError(f"{name} transition table is missing {sorted(m.value for m in missing)}")
        self.name = name
        self.enum_cls = enum_cls
        self.transitions = transitions

    def parse(self, value) -> enum.Enum:
        if isinstance(value, self.enum_cls):
            return value
        try:
            return self.enum_cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in self.enum_cls)
            raise ValidationError(f"Invalid {self.name} status '{value}'. Allowed: {allowed}")

    def is_terminal(self, state) -> bool:
        return not self.transitions[self.parse(state)]

    def can_transition(self, current, target) -> bool:
        return self.parse(target) in self.transitions[self.parse(current)]

    def allowed_targets(self, current):
        return sorted(member.value for member in self.transitions[self.parse(current)])

    def ensure(self, current, target):
        """Return the parsed target or raise if the edge is not in the table."""
        current = self.parse(current)
        target = self.parse(target)
        if target not in self.transitions[current]:
            if self.is_terminal(current):
                raise InvalidTransitionError(
                    f"{self.name.capitalize()} is already {current.value}"
                )
            raise InvalidTransitionError(
                f"Cannot move {self.name} from {current.value} to {target.value}"
            )
        return target


CASE_STATES = StateMachine("case", CaseStatus, {
    CaseStatus.PENDING: frozenset({CaseStatus.ACTIVE, CaseStatus.DECLINED}),
    CaseStatus.ACTIVE: frozenset({CaseStatus.COMPLETED}),
    CaseStatus.COMPLETED: frozenset(),
    CaseStatus.DECLINED: frozenset(),
})

_OPEN_CONSULTATION_TARGETS = frozenset({
    ConsultationStatus.CONFIRMED,
    ConsultationStatus.RESCHEDULED,
    ConsultationStatus.IN_PROGRESS,
    ConsultationStatus.CANCELLED,
    ConsultationStatus.NO_SHOW,
})

# 'rescheduled' is a real state here; it used to be written by the reschedule
# path while missing from the stored status enum.
CONSULTATION_STATES = StateMachine("consultation", ConsultationStatus, {
    ConsultationStatus.SCHEDULED: _OPEN_CONSULTATION_TARGETS,
    ConsultationStatus.RESCHEDULED: _OPEN_CONSULTATION_TARGETS,
    ConsultationStatus.CONFIRMED: (_OPEN_CONSULTATION_TARGETS - {ConsultationStatus.CONFIRMED}) | {ConsultationStatus.COMPLETED},
    ConsultationStatus.IN_PROGRESS: frozenset({ConsultationStatus.COMPLETED}),
    ConsultationStatus.COMPLETED: frozenset(),
    ConsultationStatus.CANCELLED: frozenset(),
    ConsultationStatus.NO_SHOW: frozenset(),
})

FEEDBACK_ELIGIBLE_STATUSES = frozenset({ConsultationStatus.CONFIRMED, ConsultationStatus.COMPLETED})


class OnboardingMachine:
    """Barrister onboarding: the stage only moves forward, status resolves once.

    Rejection is accepted from any stage that is not already completed.
    INCOMPLETE keeps the stage where it is and lets the barrister resubmit.
    """

    STAGE_ORDER = [
        OnboardingStage.ELIGIBILITY_CHECK,
        OnboardingStage.DOCUMENT_UPLOAD_COMPLETED,
        OnboardingStage.PROFESSIONAL_INFORMATION,
        OnboardingStage.REVIEW,
        OnboardingStage.COMPLETED,
    ]

    STATUS_TRANSITIONS = {
        BarristerStatus.PENDING_VERIFICATION: frozenset({
            BarristerStatus.APPROVED, BarristerStatus.REJECTED, BarristerStatus.INCOMPLETE,
        }),
        BarristerStatus.INCOMPLETE: frozenset({
            BarristerStatus.PENDING_VERIFICATION, BarristerStatus.APPROVED, BarristerStatus.REJECTED,
        }),
        BarristerStatus.APPROVED: frozenset(),
        BarristerStatus.REJECTED: frozenset(),
    }

    def rank(self, stage) -> int:
        return self.STAGE_ORDER.index(OnboardingStage(stage))

    def advance(self, current, target):
        """Return the stage to store: never earlier than ``current``."""
        current = OnboardingStage(current)
        target = OnboardingStage(target)
        if current == OnboardingStage.COMPLETED and target != OnboardingStage.COMPLETED:
            raise InvalidTransitionError("Onboarding is already completed")
        return target if self.rank(target) >= self.rank(current) else current

    def require_stage(self, current, minimum):
        if self.rank(current) < self.rank(minimum):
            raise InvalidTransitionError(
                f"Onboarding stage '{OnboardingStage(minimum).value}' must be reached first"
            )

    def ensure_status(self, current, target):
        current = BarristerStatus(current)
        try:
            target = BarristerStatus(target)
        except ValueError:
            raise ValidationError(f"Invalid barrister status '{target}'")
        if target not in self.STATUS_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Cannot move barrister from {current.value} to {target.value}"
            )
        return target


ONBOARDING = OnboardingMachine()
