# app/services/workflow.py
"""
Clearance stage plan and transition rules.

Nothing in here touches the database: given the stored status of an
application, the acting role and the requested action, ``plan_transition``
either returns the decision to persist or raises one of the workflow errors.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from app.core.exceptions import IncompleteVerification, InvalidTransition, Unauthorized
from app.models.enums import (
    ActorRole,
    ApplicationStatus,
    ReviewAction,
    StudentType,
    TERMINAL_STATUSES,
    VerificationStage,
)


@dataclass(frozen=True)
class Stage:
    key: str
    role: ActorRole
    approved_status: ApplicationStatus
    flags: tuple = ()
    # status the application sits in while waiting on this stage
    queue_status: Optional[ApplicationStatus] = None
    # False when something other than the previous approval moves the application into the queue
    auto_queue: bool = True
    label: str = ""


LIBRARY = Stage(
    key="library",
    role=ActorRole.Library,
    approved_status=ApplicationStatus.LibraryVerified,
    flags=(VerificationStage.Library,),
    label="Library",
)
HOSTEL = Stage(
    key="hostel",
    role=ActorRole.Hostel,
    approved_status=ApplicationStatus.HostelVerified,
    flags=(VerificationStage.Hostel,),
    queue_status=ApplicationStatus.HostelVerificationPending,
    label="Hostel",
)
COLLEGE_OFFICE = Stage(
    key="college_office",
    role=ActorRole.CollegeOffice,
    approved_status=ApplicationStatus.CollegeOfficeVerified,
    flags=(VerificationStage.CollegeOffice,),
    queue_status=ApplicationStatus.CollegeOfficeVerificationPending,
    label="College Office",
)
FACULTY = Stage(
    key="faculty",
    role=ActorRole.Faculty,
    approved_status=ApplicationStatus.FacultyVerified,
    label="Faculty",
)
COUNSELLOR = Stage(
    key="counsellor",
    role=ActorRole.Counsellor,
    approved_status=ApplicationStatus.CounsellorVerified,
    flags=(VerificationStage.Counsellor,),
    label="Counsellor",
)
CLASS_ADVISOR = Stage(
    key="class_advisor",
    role=ActorRole.ClassAdvisor,
    approved_status=ApplicationStatus.ClassAdvisorVerified,
    flags=(VerificationStage.ClassAdvisor,),
    label="Class Advisor",
)
HOD = Stage(
    key="hod",
    role=ActorRole.HOD,
    approved_status=ApplicationStatus.HODVerified,
    flags=(VerificationStage.HOD,),
    label="HOD",
)
LAB = Stage(
    key="lab",
    role=ActorRole.LabInstructor,
    approved_status=ApplicationStatus.LabVerified,
    flags=(VerificationStage.Payment, VerificationStage.Lab),
    queue_status=ApplicationStatus.PaymentPending,
    auto_queue=False,
    label="Lab",
)


class StagePlan:
    """Ordered stages one student type has to clear."""

    def __init__(self, student_type: StudentType, stages: Sequence[Stage], gate_stage: Stage = FACULTY):
        self.student_type = student_type
        self.stages = tuple(stages)
        self._gate_index = self.stages.index(gate_stage)
        self._waiting: dict = {}

        for index, stage in enumerate(self.stages):
            if index == 0:
                self._waiting[ApplicationStatus.Pending] = index
                continue
            # the previous approval is accepted too, so rows that stopped on it stay workable
            self._waiting[self.stages[index - 1].approved_status] = index
            if stage.queue_status is not None:
                self._waiting[stage.queue_status] = index

    def __iter__(self):
        return iter(self.stages)

    def stage_for(self, status: ApplicationStatus) -> Optional[Stage]:
        index = self._waiting.get(status)
        return None if index is None else self.stages[index]

    def next_stage(self, stage: Stage) -> Optional[Stage]:
        index = self.stages.index(stage) + 1
        return self.stages[index] if index < len(self.stages) else None

    def previous_stages(self, stage: Stage) -> tuple:
        return self.stages[: self.stages.index(stage)]

    def requires_subjects(self, stage: Stage) -> bool:
        return self.stages.index(stage) >= self._gate_index

    def flags(self) -> tuple:
        return tuple(flag for stage in self.stages for flag in stage.flags)

    def statuses(self) -> tuple:
        """Every status an application of this type can be stored in, in order."""
        ordered = [ApplicationStatus.Pending]
        for stage in self.stages:
            if stage.queue_status is not None:
                ordered.append(stage.queue_status)
            ordered.append(stage.approved_status)
        ordered.append(ApplicationStatus.Completed)
        return tuple(ordered)


_PLANS = {
    StudentType.Local: StagePlan(
        StudentType.Local,
        (LIBRARY, COLLEGE_OFFICE, FACULTY, COUNSELLOR, CLASS_ADVISOR, HOD, LAB),
    ),
    StudentType.Hostel: StagePlan(
        StudentType.Hostel,
        (LIBRARY, HOSTEL, COLLEGE_OFFICE, FACULTY, COUNSELLOR, CLASS_ADVISOR, HOD, LAB),
    ),
}


def stage_plan(student_type) -> StagePlan:
    try:
        return _PLANS[StudentType(student_type)]
    except ValueError:
        raise InvalidTransition(f"Unknown student type '{student_type}'.")


@dataclass(frozen=True)
class TransitionDecision:
    stage: Stage
    action: ReviewAction
    from_status: str
    path: tuple
    flags: tuple = ()
    next_stage: Optional[Stage] = None
    upstream_roles: tuple = field(default=())

    @property
    def to_status(self) -> ApplicationStatus:
        return self.path[-1]


def current_stage(plan: StagePlan, stored_status) -> Stage:
    """Stage the application is waiting on, or InvalidTransition if it waits on none."""
    status = ApplicationStatus.parse(stored_status)
    if status is None:
        raise InvalidTransition(f"Application status '{stored_status}' is not recognised.", status=str(stored_status))
    if status in TERMINAL_STATUSES:
        raise InvalidTransition(f"Application is already {status.value}.", status=status.value)

    stage = plan.stage_for(status)
    if stage is None:
        raise InvalidTransition(
            f"Status '{status.value}' is not part of the {plan.student_type.value} workflow.",
            status=status.value,
        )
    return stage


def plan_transition(
    plan: StagePlan,
    stored_status,
    acting_role,
    action,
    unverified_subjects: Sequence[str] = (),
) -> TransitionDecision:
    stage = current_stage(plan, stored_status)
    action = ReviewAction(action)

    if str(getattr(acting_role, "value", acting_role)).lower() != stage.role.value:
        raise Unauthorized(
            f"Role '{getattr(acting_role, 'value', acting_role)}' cannot act on the {stage.label} stage; "
            f"it requires '{stage.role.value}'.",
            stage=stage.key,
        )

    if action == ReviewAction.Reject:
        return TransitionDecision(
            stage=stage,
            action=action,
            from_status=str(stored_status),
            path=(ApplicationStatus.Rejected,),
            upstream_roles=tuple(s.role for s in plan.previous_stages(stage)),
        )

    if plan.requires_subjects(stage) and unverified_subjects:
        raise IncompleteVerification(
            f"All subjects must be verified by their faculty before the {stage.label} stage can approve.",
            missing=unverified_subjects,
        )

    if not stage.auto_queue and ApplicationStatus.parse(stored_status) != stage.queue_status:
        raise IncompleteVerification(
            f"The {stage.label} stage cannot approve before the payment is recorded.",
            missing=[VerificationStage.Payment.value],
        )

    path = [stage.approved_status]
    next_stage = plan.next_stage(stage)
    if next_stage is None:
        path.append(ApplicationStatus.Completed)
    elif next_stage.queue_status is not None and next_stage.auto_queue:
        path.append(next_stage.queue_status)

    return TransitionDecision(
        stage=stage,
        action=action,
        from_status=str(stored_status),
        path=tuple(path),
        flags=stage.flags,
        next_stage=next_stage,
    )


def plan_payment(plan: StagePlan, stored_status) -> TransitionDecision:
    """Recording the lab-charge payment moves the application into the lab queue."""
    stage = current_stage(plan, stored_status)
    if stage.auto_queue or ApplicationStatus.parse(stored_status) == stage.queue_status:
        raise InvalidTransition(
            "Payment can only be recorded once the application is waiting for it.",
            status=str(stored_status),
        )
    return TransitionDecision(
        stage=stage,
        action=ReviewAction.Approve,
        from_status=str(stored_status),
        path=(stage.queue_status,),
        next_stage=stage,
    )
