# app/services/status_presenter.py

from dataclasses import dataclass

from app.models.enums import ApplicationStatus, StatusCategory


@dataclass(frozen=True)
class StatusBadge:
    label: str
    category: StatusCategory


STATUS_BADGES = {
    ApplicationStatus.Pending: StatusBadge("Pending", StatusCategory.Pending),
    ApplicationStatus.LibraryVerified: StatusBadge("Library Verified", StatusCategory.Success),
    ApplicationStatus.HostelVerificationPending: StatusBadge("Hostel Verification Pending", StatusCategory.Pending),
    ApplicationStatus.HostelVerified: StatusBadge("Hostel Verified", StatusCategory.Success),
    ApplicationStatus.CollegeOfficeVerificationPending: StatusBadge("Office Verification Pending", StatusCategory.Pending),
    ApplicationStatus.CollegeOfficeVerified: StatusBadge("Office Verified", StatusCategory.Success),
    ApplicationStatus.FacultyVerified: StatusBadge("Faculty Verified", StatusCategory.Success),
    ApplicationStatus.CounsellorVerified: StatusBadge("Counsellor Verified", StatusCategory.Success),
    ApplicationStatus.ClassAdvisorVerified: StatusBadge("Class Advisor Verified", StatusCategory.Success),
    ApplicationStatus.HODVerified: StatusBadge("HOD Verified", StatusCategory.Success),
    ApplicationStatus.PaymentPending: StatusBadge("Payment Pending", StatusCategory.Pending),
    ApplicationStatus.LabVerified: StatusBadge("Lab Verified", StatusCategory.Success),
    ApplicationStatus.Completed: StatusBadge("Completed", StatusCategory.Success),
    ApplicationStatus.Rejected: StatusBadge("Rejected", StatusCategory.Rejected),
}


def render_status(status) -> StatusBadge:
    """
    Map a stored status to its badge.

    Never raises: values the table does not know (new upstream statuses,
    corrupted rows) fall back to the 'unknown' category with the raw value
    as label.
    """
    known = ApplicationStatus.parse(status) if status is not None else None
    if known is not None:
        return STATUS_BADGES[known]

    raw = "" if status is None else str(getattr(status, "value", status))
    return StatusBadge(raw or "Unknown", StatusCategory.Unknown)
