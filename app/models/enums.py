from enum import Enum


class ApplicationStatus(str, Enum):
    Pending = "pending"
    LibraryVerified = "library_verified"
    HostelVerificationPending = "hostel_verification_pending"
    HostelVerified = "hostel_verified"
    CollegeOfficeVerificationPending = "college_office_verification_pending"
    CollegeOfficeVerified = "college_office_verified"
    FacultyVerified = "faculty_verified"
    CounsellorVerified = "counsellor_verified"
    ClassAdvisorVerified = "class_advisor_verified"
    HODVerified = "hod_verified"
    PaymentPending = "payment_pending"
    LabVerified = "lab_verified"
    Completed = "completed"
    Rejected = "rejected"

    @classmethod
    def parse(cls, value) -> "ApplicationStatus | None":
        """Return the member for a stored value, or None if it is not one."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


TERMINAL_STATUSES = frozenset({ApplicationStatus.Completed, ApplicationStatus.Rejected})


class StudentType(str, Enum):
    Local = "local"
    Hostel = "hostel"


class ActorRole(str, Enum):
    Admin = "admin"
    Student = "student"
    Library = "library"
    Hostel = "hostel"
    CollegeOffice = "college_office"
    Faculty = "faculty"
    Counsellor = "counsellor"
    ClassAdvisor = "class_advisor"
    HOD = "hod"
    LabInstructor = "lab_instructor"


class VerificationStage(str, Enum):
    """Keys of the per-stage verification records."""
    Library = "library"
    Hostel = "hostel"
    CollegeOffice = "college_office"
    HOD = "hod"
    Counsellor = "counsellor"
    ClassAdvisor = "class_advisor"
    Payment = "payment"
    Lab = "lab"


class ReviewAction(str, Enum):
    Approve = "approve"
    Reject = "reject"


class NotificationKind(str, Enum):
    Approval = "approval"
    Rejection = "rejection"
    Info = "info"


class StatusCategory(str, Enum):
    Pending = "pending"
    Success = "success"
    Rejected = "rejected"
    Unknown = "unknown"
