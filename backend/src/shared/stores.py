"""
DynamoDB-backed stores for projects, users, submissions and pooled tasks.

Items are plain dicts in DynamoDB shape (numbers as Decimal). Each store
takes its Table resource in the constructor so tests can pass a fake.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from boto3.dynamodb.conditions import Key, Attr
from botocore.exceptions import ClientError
from .config import config
from .dynamo import get_table, get_item, put_item, update_item, query_all, count_items, is_conditional_failure
from .errors import NotFound
from .logging import logger
from .models import SubmissionStatus


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProjectStore:
    """Read access to projects plus the strict-mode capacity counter."""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(config.PROJECTS_TABLE)

    def get(self, project_id: str) -> Dict[str, Any]:
        project = get_item(self.table, {'projectId': project_id})
        if not project:
            raise NotFound('Project not found')
        return project

    def increment_active_count(self, project_id: str, ceiling: Optional[int] = None) -> int:
        """
        Atomically add one to activeSubmissionsCount.

        With a ceiling the increment only happens while the counter is below it;
        a failed condition propagates as ClientError.
        """
        condition = None
        values = {':one': 1}
        if ceiling is not None:
            condition = 'attribute_not_exists(activeSubmissionsCount) OR activeSubmissionsCount < :ceiling'
            values[':ceiling'] = ceiling
        attrs = update_item(
            self.table,
            key={'projectId': project_id},
            update_expression='ADD activeSubmissionsCount :one',
            expression_values=values,
            condition=condition
        )
        return int(attrs.get('activeSubmissionsCount', 0))

    def decrement_active_count(self, project_id: str) -> int:
        """Atomically remove one from activeSubmissionsCount, never below zero."""
        try:
            attrs = update_item(
                self.table,
                key={'projectId': project_id},
                update_expression='ADD activeSubmissionsCount :minus_one',
                expression_values={':minus_one': -1, ':zero': 0},
                condition='activeSubmissionsCount > :zero'
            )
            return int(attrs.get('activeSubmissionsCount', 0))
        except ClientError as e:
            if not is_conditional_failure(e):
                raise
            logger.warning(f"Capacity counter for project {project_id} already at zero")
            return 0


class UserStore:
    """Worker profiles."""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(config.USERS_TABLE)

    def get(self, user_id: str, consistent: bool = False) -> Dict[str, Any]:
        user = get_item(self.table, {'userId': user_id}, consistent=consistent)
        if not user:
            raise NotFound('User not found')
        return user

    def add_submission_counts(self, user_id: str, total_delta: int, approved_delta: int) -> Dict[str, Any]:
        """Atomically add to the submission counters and return the whole profile."""
        try:
            return update_item(
                self.table,
                key={'userId': user_id},
                update_expression='ADD totalSubmissionsCount :total, approvedSubmissionsCount :approved SET updatedAt = :ts',
                expression_values={':total': total_delta, ':approved': approved_delta, ':ts': utc_now_iso()},
                condition='attribute_exists(userId)'
            )
        except ClientError as e:
            if is_conditional_failure(e):
                raise NotFound('User not found')
            raise

    def set_reputation(self, user_id: str, approval_rate, tier: str, total: int, approved: int) -> Dict[str, Any]:
        """
        Write the derived approvalRate and tier, only if the counters are still
        the ones they were computed from. A failed condition propagates.
        """
        return update_item(
            self.table,
            key={'userId': user_id},
            update_expression='SET approvalRate = :rate, tier = :tier',
            expression_values={
                ':rate': approval_rate,
                ':tier': tier,
                ':total': total,
                ':approved': approved
            },
            condition='totalSubmissionsCount = :total AND approvedSubmissionsCount = :approved'
        )


class SubmissionStore:
    """Submissions double as the lockable work units."""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(config.SUBMISSIONS_TABLE)

    def get(self, submission_id: str, consistent: bool = True) -> Dict[str, Any]:
        submission = get_item(self.table, {'submissionId': submission_id}, consistent=consistent)
        if not submission:
            raise NotFound('Submission not found')
        return submission

    def create(self, submission: Dict[str, Any]) -> Dict[str, Any]:
        put_item(self.table, submission, condition='attribute_not_exists(submissionId)')
        return submission

    def find_active_for_user(self, user_id: str, project_id: str) -> List[Dict[str, Any]]:
        """Submissions by this user on this project that block a resubmission."""
        return query_all(
            self.table,
            index_name=config.SUBMISSIONS_BY_USER_INDEX,
            key_condition=Key('userId').eq(user_id),
            filter_expression=Attr('projectId').eq(project_id) & Attr('status').is_in(list(SubmissionStatus.ACTIVE))
        )

    def count_non_rejected(self, project_id: str) -> int:
        return count_items(
            self.table,
            index_name=config.SUBMISSIONS_BY_PROJECT_INDEX,
            key_condition=Key('projectId').eq(project_id),
            filter_expression=Attr('status').ne(SubmissionStatus.REJECTED)
        )

    def find_locked_by(self, user_id: str, project_id: str) -> List[Dict[str, Any]]:
        return query_all(
            self.table,
            index_name=config.SUBMISSIONS_BY_PROJECT_INDEX,
            key_condition=Key('projectId').eq(project_id),
            filter_expression=Attr('isLocked').eq(True) & Attr('lockedBy').eq(user_id)
        )

    def update_review(
        self,
        submission_id: str,
        expected_status: str,
        new_status: str,
        reviewer_id: str,
        feedback: Optional[str] = None
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Set the reviewed status, only if the stored status is still expected_status.
        A concurrent review makes the condition fail (ClientError propagates).

        ledgerApplied is set in the same write, so exactly one review sees it
        unset and counts the submission.

        Returns:
            (updated item, whether the submission was already counted before this write)
        """
        timestamp = utc_now_iso()
        update_expr = (
            'SET #status = :new_status, reviewedBy = :reviewer, reviewTimestamp = :ts, '
            'updatedAt = :ts, ledgerApplied = :true'
        )
        values = {
            ':new_status': new_status,
            ':expected': expected_status,
            ':reviewer': reviewer_id,
            ':ts': timestamp,
            ':true': True
        }
        if feedback is not None:
            update_expr += ', adminFeedback = :feedback'
            values[':feedback'] = feedback
        old = update_item(
            self.table,
            key={'submissionId': submission_id},
            update_expression=update_expr,
            expression_values=values,
            expression_names={'#status': 'status'},
            condition='#status = :expected',
            return_values='ALL_OLD'
        )
        updated = dict(old)
        updated.update({
            'status': new_status,
            'reviewedBy': reviewer_id,
            'reviewTimestamp': timestamp,
            'updatedAt': timestamp,
            'ledgerApplied': True
        })
        if feedback is not None:
            updated['adminFeedback'] = feedback
        return updated, bool(old.get('ledgerApplied'))


class TaskPoolStore:
    """Pooled task entries, one record per (projectId, taskIndex)."""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(config.TASK_POOL_TABLE)

    def mark_assigned(self, project_id: str, task_index: int) -> bool:
        """Flag one pooled task as assigned. False if the entry does not exist."""
        try:
            update_item(
                self.table,
                key={'projectId': project_id, 'taskIndex': task_index},
                update_expression='SET isAssigned = :true, assignedAt = :ts',
                expression_values={':true': True, ':ts': utc_now_iso()},
                condition='attribute_exists(projectId)',
                return_values='NONE'
            )
            return True
        except ClientError as e:
            if is_conditional_failure(e):
                return False
            raise
