"""
Submission lifecycle controller.

Orchestrates a worker's submission from content validation to reputation
update, and the admin review paths (single and bulk).

Failure policy:
- Validation, lookup, duplicate, payment and capacity failures abort submit
  before anything is written.
- The submission write and the worker's reputation write are primary: their
  failures propagate.
- Unlocking work units, marking the pooled task, capacity bookkeeping on
  rejection, the audit log and notifications are best-effort: failures are
  logged and never change the result.
"""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Callable, Dict, List, Optional
from botocore.exceptions import ClientError
from shared.audit import AuditLog
from shared.capacity import CapacityTracker
from shared.config import config
from shared.dynamo import is_conditional_failure, to_decimal
from shared.errors import (
    DuplicateSubmission,
    InvalidInput,
    InvalidProjectConfiguration,
    InvalidStatus,
    MarketplaceError,
    NotFound,
    PersistenceFailure,
)
from shared.logging import logger, log_side_effect_failure
from shared.models import AuditAction, PaymentType, SubmissionStatus, TriageStatus
from shared.notifications import NotificationSink, build_payload, default_sink, event_for_status
from shared.reputation import ReputationLedger, format_rate
from shared.stores import ProjectStore, SubmissionStore, TaskPoolStore, UserStore
from shared.triage import QualityTriageEngine, local_quality_score, project_criteria, reviewer_score, score_feedback
from shared.work_unit_lock import WorkUnitLock

CENT = Decimal('0.01')
TRIAGE_FALLBACK_REASON = 'AI Quality Check failed.'

SUBMIT_MESSAGES = {
    SubmissionStatus.APPROVED: 'Work submitted and auto-approved by AI quality check!',
    SubmissionStatus.REJECTED: 'Work submitted, but did not meet quality standards.',
    SubmissionStatus.PENDING: 'Work submitted successfully! Awaiting admin review.',
}


# =============================================================================
# Pure decision helpers
# =============================================================================

def validate_content(content) -> str:
    """Return the trimmed content, or raise InvalidInput if it is empty or not text."""
    if not isinstance(content, str) or not content.strip():
        raise InvalidInput('Submission content is required and cannot be empty.')
    return content.strip()


def parse_minutes(time_spent_minutes) -> int:
    """Whole minutes worked; InvalidInput if missing, non-numeric or not positive."""
    if time_spent_minutes is None or isinstance(time_spent_minutes, bool):
        minutes = 0
    else:
        try:
            minutes = int(Decimal(str(time_spent_minutes).strip()))
        except (InvalidOperation, ValueError, OverflowError):
            minutes = 0
    if minutes <= 0:
        raise InvalidInput('Invalid time. Time spent (in minutes) is required for hourly projects.')
    return minutes


def compute_payment(project: Dict[str, Any], time_spent_minutes=None) -> Decimal:
    """
    Payment owed for one submission.

    HOURLY: payRate / 60 * minutes, rounded half-up to the cent.
    PER_TASK (and legacy projects without paymentType): payRate.

    Raises:
        InvalidInput: hourly project without a positive timeSpentMinutes
        InvalidProjectConfiguration: the computed amount is not positive
    """
    try:
        pay_rate = to_decimal(project.get('payRate') or 0)
    except InvalidOperation:
        pay_rate = Decimal('0')

    if project.get('paymentType') == PaymentType.HOURLY:
        minutes = parse_minutes(time_spent_minutes)
        amount = (pay_rate * minutes / Decimal(60)).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        amount = pay_rate

    if amount <= 0:
        logger.error(f"Project {project.get('projectId')} pay rate is not set or is zero")
        raise InvalidProjectConfiguration('Project pay rate is not set or is zero.')
    return amount


def decide_status(triage_status: str, score: int) -> str:
    """
    Final submission status, evaluated top-down:
    triage APPROVED/REJECTED wins; otherwise score >= 98 approves,
    score < 70 rejects, anything else waits for a human.
    """
    if triage_status == TriageStatus.APPROVED:
        return SubmissionStatus.APPROVED
    if triage_status == TriageStatus.REJECTED:
        return SubmissionStatus.REJECTED
    if score >= config.AUTO_APPROVE_THRESHOLD:
        return SubmissionStatus.APPROVED
    if score < config.HUMAN_REVIEW_THRESHOLD:
        return SubmissionStatus.REJECTED
    return SubmissionStatus.PENDING


def has_consistency_warning(score: int, trimmed_content: str) -> bool:
    """High score on suspiciously short content. Informational only."""
    return score > config.CONSISTENCY_SCORE_THRESHOLD and len(trimmed_content) < config.CONSISTENCY_MIN_LENGTH


def scheduled_approval_date(score: int, status: str, now: datetime) -> Optional[datetime]:
    """High-scoring pending submissions are auto-approved after a delay (swept elsewhere)."""
    if score >= config.AUTO_APPROVAL_SCORE and status == SubmissionStatus.PENDING:
        return now + timedelta(days=config.AUTO_APPROVAL_DELAY_DAYS)
    return None


def parse_task_index(task_index) -> Optional[int]:
    """Pool index as a non-negative int, None when absent or invalid."""
    if task_index is None or task_index == '' or isinstance(task_index, bool):
        return None
    try:
        index = int(str(task_index).strip())
    except ValueError:
        logger.warning(f"[TASK POOL] Invalid taskIndex value: {task_index}")
        return None
    if index < 0:
        logger.warning(f"[TASK POOL] Invalid taskIndex value: {task_index}")
        return None
    return index


# =============================================================================
# Controller
# =============================================================================

class SubmissionController:
    """Submit, review and bulk review. All collaborators are injected."""

    def __init__(
        self,
        projects: ProjectStore,
        submissions: SubmissionStore,
        users: UserStore,
        task_pool: TaskPoolStore,
        lock: WorkUnitLock,
        capacity: CapacityTracker,
        engine: QualityTriageEngine,
        ledger: ReputationLedger,
        sink: NotificationSink,
        audit: AuditLog,
        score_fn: Callable[[], int] = local_quality_score,
        clock: Callable[[], datetime] = None
    ):
        self.projects = projects
        self.submissions = submissions
        self.users = users
        self.task_pool = task_pool
        self.lock = lock
        self.capacity = capacity
        self.engine = engine
        self.ledger = ledger
        self.sink = sink
        self.audit = audit
        self.score_fn = score_fn
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit(
        self,
        project_id: str,
        user_id: str,
        content,
        time_spent_minutes=None,
        task_index=None
    ) -> Dict[str, Any]:
        """
        Accept a worker's submission for a project.

        Returns:
            dict: {
                'submission': persisted item,
                'aiScore': local quality score,
                'aiFeedback': triage engine reason,
                'status': final status,
                'message': human-readable summary,
                'reputation': {'tier', 'approvalRate'} when the ledger was updated
            }
        """
        trimmed = validate_content(content)
        project = self.projects.get(project_id)
        logger.info(f"[SUBMIT] Project {project_id} ({project.get('paymentType')}) submission by {user_id}")

        self._check_duplicate(project, user_id)
        payment_amount = compute_payment(project, time_spent_minutes)
        slot_reserved = self.capacity.reserve(project)

        verdict = self._triage(trimmed, project)
        triage_status = verdict['status']
        score = self.score_fn()
        status = decide_status(triage_status, score)
        logger.info(f"[AI-TRIAGE] Submission status {status} (triage: {triage_status}, score: {score}%)")

        consistency_warning = has_consistency_warning(score, trimmed)
        if consistency_warning:
            logger.info(
                f"[CONSISTENCY WARNING] High AI score ({score}%) but short content "
                f"({len(trimmed)} chars) - possible contradiction detected"
            )

        now = self.clock()
        approval_date = scheduled_approval_date(score, status, now)
        if approval_date:
            logger.info(f"[AUTO-APPROVAL SCHEDULE] Submission ({score}%) scheduled for {approval_date.isoformat()}")

        hourly = project.get('paymentType') == PaymentType.HOURLY
        submission = {
            'submissionId': str(uuid.uuid4()),
            'projectId': project_id,
            'userId': user_id,
            'content': trimmed,
            'paymentAmount': payment_amount,
            'timeSpentMinutes': parse_minutes(time_spent_minutes) if hourly else None,
            'status': status,
            'triageStatus': triage_status,
            'aiScore': score,
            'aiFeedback': verdict['reason'],
            'consistencyWarning': consistency_warning,
            'scheduledApprovalDate': approval_date.isoformat() if approval_date else None,
            'isLocked': False,
            'ledgerApplied': status in SubmissionStatus.REVIEWABLE,
            'createdAt': now.isoformat(),
            'updatedAt': now.isoformat(),
        }

        self._persist(submission, project, slot_reserved)
        logger.info(f"[SUBMIT] Submission {submission['submissionId']} saved with status {status}")

        if slot_reserved and status == SubmissionStatus.REJECTED:
            self._give_back_slot(project)

        self._release_user_locks(project_id, user_id)

        index = parse_task_index(task_index)
        if index is not None:
            self._mark_pool_task(project_id, index)

        user = None
        if status in SubmissionStatus.REVIEWABLE:
            user = self._apply_ledger(submission, already_counted=False)

        self._notify(submission, project.get('title'), user)

        result = {
            'message': SUBMIT_MESSAGES[status],
            'submission': submission,
            'aiScore': score,
            'aiFeedback': verdict['reason'],
            'status': status,
        }
        if user:
            result['reputation'] = {
                'tier': user.get('tier'),
                'approvalRate': format_rate(user.get('approvalRate')),
            }
        return result

    def _check_duplicate(self, project: Dict[str, Any], user_id: str) -> None:
        task_type = project.get('taskType')
        if task_type in config.REPEATABLE_TASK_TYPES:
            return
        if self.submissions.find_active_for_user(user_id, project['projectId']):
            raise DuplicateSubmission(
                f"You have already submitted this task (Type: {task_type}). "
                f"Only tasks of type {' or '.join(config.REPEATABLE_TASK_TYPES)} can be repeated."
            )

    def _triage(self, trimmed: str, project: Dict[str, Any]) -> Dict[str, str]:
        try:
            verdict = self.engine.evaluate(trimmed, project_criteria(project))
        except Exception as e:
            logger.error(f"[AI QUALITY CHECK ERROR] Failed to get AI triage status: {e}")
            return {'status': TriageStatus.PENDING, 'reason': TRIAGE_FALLBACK_REASON}

        if not isinstance(verdict, dict) or verdict.get('status') not in TriageStatus.ALL:
            logger.error(f"[AI QUALITY CHECK ERROR] Unusable triage verdict: {verdict!r}")
            return {'status': TriageStatus.PENDING, 'reason': TRIAGE_FALLBACK_REASON}
        return {'status': verdict['status'], 'reason': verdict.get('reason') or TRIAGE_FALLBACK_REASON}

    def _persist(self, submission: Dict[str, Any], project: Dict[str, Any], slot_reserved: bool) -> None:
        try:
            self.submissions.create(submission)
        except Exception as e:
            logger.exception(
                f"[CRITICAL SUBMIT ERROR] Could not save submission for project {submission['projectId']} "
                f"by {submission['userId']}"
            )
            if slot_reserved:
                self._give_back_slot(project)
            if isinstance(e, MarketplaceError):
                raise
            raise PersistenceFailure('Server Error during submission.') from e

    def _give_back_slot(self, project: Dict[str, Any]) -> None:
        try:
            self.capacity.release(project)
        except Exception as e:
            log_side_effect_failure('CAPACITY', e, project=project.get('projectId'))

    def _release_user_locks(self, project_id: str, user_id: str) -> int:
        """Unlock every work unit this user still holds on the project."""
        try:
            units = self.submissions.find_locked_by(user_id, project_id)
        except Exception as e:
            log_side_effect_failure('TASK UNLOCK', e, project=project_id, user=user_id)
            return 0

        released = 0
        for unit in units:
            try:
                self.lock.release(unit['submissionId'], user_id)
                released += 1
            except Exception as e:
                log_side_effect_failure('TASK UNLOCK', e, unit=unit.get('submissionId'), user=user_id)
        if released:
            logger.info(f"[TASK UNLOCK] Unlocked {released} task(s) for user {user_id} on project {project_id}")
        return released

    def _mark_pool_task(self, project_id: str, index: int) -> None:
        try:
            if self.task_pool.mark_assigned(project_id, index):
                logger.info(f"[TASK POOL] Marked task {index} of project {project_id} as assigned")
            else:
                logger.warning(f"[TASK POOL] Task at index {index} not found in project {project_id}'s pool")
        except Exception as e:
            log_side_effect_failure('TASK POOL', e, project=project_id, index=index)

    # -------------------------------------------------------------------------
    # Reputation and notification
    # -------------------------------------------------------------------------

    def _apply_ledger(self, submission: Dict[str, Any], already_counted: bool) -> Optional[Dict[str, Any]]:
        """
        Count a decided submission in the worker's reputation.

        already_counted comes from the write that claimed ledgerApplied, so a
        submission flipping between Approved and Rejected is reclassified
        instead of counted again.
        """
        user_id = submission['userId']
        approved = submission['status'] == SubmissionStatus.APPROVED
        try:
            if already_counted:
                user = self.ledger.reclassify(user_id, approved)
            else:
                user = self.ledger.recompute(user_id, approved)
        except NotFound:
            logger.warning(f"[PERFORMANCE] User {user_id} not found, metrics not updated")
            return None
        return user

    def _notify(self, submission: Dict[str, Any], project_title: Optional[str], user: Optional[Dict[str, Any]]) -> None:
        try:
            payload = build_payload(submission, project_title, user)
            self.sink.notify(submission['userId'], event_for_status(submission['status']), payload)
        except Exception as e:
            log_side_effect_failure('NOTIFICATION', e, submission=submission.get('submissionId'))

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    def review(
        self,
        submission_id: str,
        reviewer_id: str,
        new_status: str,
        feedback: Optional[str] = None,
        bulk: bool = False
    ) -> Dict[str, Any]:
        """
        Admin override of a submission's status.

        Reviewing into the current status changes nothing and triggers no
        side effects.

        Raises:
            NotFound: submission absent
            InvalidStatus: target is not Approved/Rejected, or a concurrent
                review moved the submission elsewhere first
        """
        submission = self.submissions.get(submission_id)
        if new_status not in SubmissionStatus.REVIEWABLE:
            raise InvalidStatus('Invalid status value')

        old_status = submission.get('status')
        if old_status == new_status:
            logger.info(f"[SUBMISSION REVIEW] Submission {submission_id} already {new_status}, skipping")
            return submission

        try:
            updated, was_counted = self.submissions.update_review(submission_id, old_status, new_status, reviewer_id, feedback)
        except ClientError as e:
            if not is_conditional_failure(e):
                raise PersistenceFailure('Error saving submission status.') from e
            current = self.submissions.get(submission_id)
            if current.get('status') == new_status:
                return current
            raise InvalidStatus('Submission was reviewed concurrently. Reload and try again.')
        logger.info(f"[SUBMISSION REVIEW] Submission {submission_id}: {old_status} -> {new_status}")

        project = self._find_project(updated.get('projectId'))
        if project:
            self._adjust_capacity(project, old_status, new_status)

        user = self._apply_ledger(updated, already_counted=was_counted)

        self._audit_review(reviewer_id, updated, old_status, user, bulk)

        self._notify(updated, project.get('title') if project else None, user)
        return updated

    def _find_project(self, project_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not project_id:
            return None
        try:
            return self.projects.get(project_id)
        except Exception as e:
            log_side_effect_failure('SUBMISSION REVIEW', e, project=project_id)
            return None

    def _adjust_capacity(self, project: Dict[str, Any], old_status: str, new_status: str) -> None:
        try:
            if new_status == SubmissionStatus.REJECTED and old_status != SubmissionStatus.REJECTED:
                self.capacity.release(project)
            elif old_status == SubmissionStatus.REJECTED and new_status != SubmissionStatus.REJECTED:
                self.capacity.restore(project)
        except Exception as e:
            log_side_effect_failure('CAPACITY', e, project=project.get('projectId'))

    def _audit_review(
        self,
        reviewer_id: str,
        submission: Dict[str, Any],
        old_status: str,
        user: Optional[Dict[str, Any]],
        bulk: bool
    ) -> None:
        action = AuditAction.SUBMISSION_APPROVED if submission['status'] == SubmissionStatus.APPROVED \
            else AuditAction.SUBMISSION_REJECTED
        details = {
            'oldStatus': old_status,
            'newStatus': submission['status'],
            'userTierUpdatedTo': user.get('tier') if user else None,
            'userApprovalRate': format_rate(user.get('approvalRate')) if user else None,
            'userId': submission['userId'],
        }
        if bulk:
            details['bulkOperation'] = True
        try:
            self.audit.record(reviewer_id, action, 'Submission', submission['submissionId'], details)
        except Exception as e:
            log_side_effect_failure('AUDIT LOG', e, submission=submission['submissionId'])

    def bulk_review(
        self,
        submission_ids: List[str],
        reviewer_id: str,
        new_status: str,
        feedback: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Review many submissions independently.

        A failing item is recorded in 'errors' and does not stop the batch;
        items already in the target status count as processed.

        Returns:
            dict: {'processedCount', 'failedCount', 'totalRequested', 'errors'}
        """
        if not isinstance(submission_ids, list) or not submission_ids:
            raise InvalidInput('submissionIds must be a non-empty array')
        if new_status not in SubmissionStatus.REVIEWABLE:
            raise InvalidStatus('status must be either "Approved" or "Rejected"')

        processed_count = 0
        failed_count = 0
        errors = []

        for submission_id in submission_ids:
            try:
                self.review(submission_id, reviewer_id, new_status, feedback, bulk=True)
                processed_count += 1
            except Exception as e:
                failed_count += 1
                errors.append({
                    'submissionId': submission_id,
                    'error': str(e) or 'Unknown error processing submission'
                })
                logger.warning(f"[BULK REVIEW] Failed to process submission {submission_id}: {e}")

        logger.info(f"[BULK REVIEW] Completed: {processed_count} processed, {failed_count} failed")
        return {
            'processedCount': processed_count,
            'failedCount': failed_count,
            'totalRequested': len(submission_ids),
            'errors': errors,
        }

    def suggest_review_score(self, submission_id: str) -> Dict[str, Any]:
        """Reviewer-assist score and canned feedback for a submission."""
        self.submissions.get(submission_id)
        score = reviewer_score()
        return {'aiScore': score, 'aiFeedback': score_feedback(score)}


def build_controller(sink: NotificationSink = None, engine: QualityTriageEngine = None) -> SubmissionController:
    """Wire a controller against the configured DynamoDB tables."""
    projects = ProjectStore()
    submissions = SubmissionStore()
    users = UserStore()
    return SubmissionController(
        projects=projects,
        submissions=submissions,
        users=users,
        task_pool=TaskPoolStore(),
        lock=WorkUnitLock(submissions.table),
        capacity=CapacityTracker(submissions, projects),
        engine=engine or QualityTriageEngine(),
        ledger=ReputationLedger(users),
        sink=sink or default_sink(),
        audit=AuditLog()
    )
