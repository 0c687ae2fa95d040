"""
Status constants for the annotation marketplace.
Submission lifecycle: (locked work unit) → Submitted → Triage → Pending/Approved/Rejected → Reviewed
"""


class SubmissionStatus:
    """Submission review statuses."""
    PENDING = 'Pending'
    APPROVED = 'Approved'
    REJECTED = 'Rejected'
    REQUESTED = 'Requested'
    COMPLETED = 'Completed'
    SCHEDULED = 'Scheduled'  # Legacy alias for a pending item with a scheduled approval

    # Statuses that block a second submission on non-repeatable task types
    ACTIVE = (APPROVED, PENDING, SCHEDULED)
    # Statuses an admin may set through review
    REVIEWABLE = (APPROVED, REJECTED)


class TriageStatus:
    """Quality triage engine verdicts."""
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    PENDING = 'PENDING'

    ALL = (APPROVED, REJECTED, PENDING)


class PaymentType:
    """How a project pays its workers."""
    PER_TASK = 'PER_TASK'
    HOURLY = 'HOURLY'


class TaskType:
    """Supported project task types."""
    CHAT_SENTIMENT = 'Chat_Sentiment'
    CODE_EVALUATION = 'Code_Evaluation'
    TEXT_CLASSIFICATION = 'Text_Classification'
    IMAGE_ANNOTATION = 'Image_Annotation'
    MODEL_COMPARISON = 'Model_Comparison'


class ProjectStatus:
    """Project availability."""
    AVAILABLE = 'Available'
    IN_PROGRESS = 'In Progress'
    COMPLETED = 'Completed'


class Tier:
    """Worker reputation tiers, lowest first."""
    BRONZE = 'Bronze'
    SILVER = 'Silver'
    GOLD = 'Gold'
    ELITE = 'Elite'


class UserRole:
    """Platform roles (Cognito groups are the lowercase variants)."""
    APPLICANT = 'Applicant'
    FREELANCER = 'Freelancer'
    ADMIN = 'Admin'


class NotificationEvent:
    """Event types emitted to the notification sink."""
    SUBMISSION_RECEIVED = 'SUBMISSION_RECEIVED'
    SUBMISSION_APPROVED = 'SUBMISSION_APPROVED'
    SUBMISSION_REJECTED = 'SUBMISSION_REJECTED'


class AuditAction:
    """Audit log action types."""
    SUBMISSION_APPROVED = 'SUBMISSION_APPROVED'
    SUBMISSION_REJECTED = 'SUBMISSION_REJECTED'


class CapacityMode:
    """Capacity enforcement modes."""
    LENIENT = 'lenient'
    STRICT = 'strict'
