"""
Shared fixtures: in-memory stand-ins for the DynamoDB-backed stores.
"""
import os
import sys
import threading
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

# Dummy AWS settings so boto3 never looks for real credentials
os.environ.setdefault('AWS_REGION', 'us-east-1')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')
os.environ.setdefault('PROJECTS_TABLE', 'projects-test')
os.environ.setdefault('SUBMISSIONS_TABLE', 'submissions-test')
os.environ.setdefault('USERS_TABLE', 'users-test')
os.environ.setdefault('TASK_POOL_TABLE', 'task-pool-test')
os.environ.setdefault('AUDIT_LOG_TABLE', 'audit-log-test')

# Add src to path for import
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from shared.capacity import CapacityTracker  # noqa: E402
from shared.errors import NotFound  # noqa: E402
from shared.models import CapacityMode, SubmissionStatus  # noqa: E402
from shared.reputation import ReputationLedger  # noqa: E402
from shared.submissions import SubmissionController  # noqa: E402

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def conditional_failure(operation='UpdateItem'):
    return ClientError(
        {'Error': {'Code': 'ConditionalCheckFailedException', 'Message': 'The conditional request failed'}},
        operation
    )


class FakeLockTable:
    """Submissions table that understands the lock's two conditional updates."""
    name = 'submissions-test'

    def __init__(self, items=None):
        self.items = {item['submissionId']: dict(item) for item in items or []}
        self._mutex = threading.Lock()

    def get_item(self, Key, ConsistentRead=False):
        item = self.items.get(Key['submissionId'])
        return {'Item': dict(item)} if item else {}

    def update_item(self, Key, UpdateExpression, ConditionExpression, ExpressionAttributeValues,
                    ReturnValues='ALL_NEW', **kwargs):
        with self._mutex:
            item = self.items.get(Key['submissionId'])
            values = ExpressionAttributeValues
            if 'isLocked = :false' in ConditionExpression:
                if item is None or item.get('isLocked'):
                    raise conditional_failure()
                item.update(isLocked=True, lockedBy=values[':user'], lockedAt=values[':ts'])
            else:
                if item is None or item.get('lockedBy') != values[':user']:
                    raise conditional_failure()
                item['isLocked'] = False
                item.pop('lockedBy', None)
                item.pop('lockedAt', None)
            return {'Attributes': dict(item)}


class FakeProjectStore:
    def __init__(self, projects=()):
        self.items = {p['projectId']: dict(p) for p in projects}

    def add(self, project):
        self.items[project['projectId']] = dict(project)

    def get(self, project_id):
        if project_id not in self.items:
            raise NotFound('Project not found')
        return dict(self.items[project_id])

    def increment_active_count(self, project_id, ceiling=None):
        project = self.items[project_id]
        count = project.get('activeSubmissionsCount', 0)
        if ceiling is not None and count >= ceiling:
            raise conditional_failure()
        project['activeSubmissionsCount'] = count + 1
        return count + 1

    def decrement_active_count(self, project_id):
        project = self.items[project_id]
        if project.get('activeSubmissionsCount', 0) > 0:
            project['activeSubmissionsCount'] -= 1
        return project.get('activeSubmissionsCount', 0)


class FakeUserStore:
    def __init__(self, users=()):
        self.items = {u['userId']: dict(u) for u in users}

    def add(self, user):
        self.items[user['userId']] = dict(user)

    def get(self, user_id, consistent=False):
        if user_id not in self.items:
            raise NotFound('User not found')
        return dict(self.items[user_id])

    def add_submission_counts(self, user_id, total_delta, approved_delta):
        if user_id not in self.items:
            raise NotFound('User not found')
        user = self.items[user_id]
        user['totalSubmissionsCount'] = user.get('totalSubmissionsCount', 0) + total_delta
        user['approvedSubmissionsCount'] = user.get('approvedSubmissionsCount', 0) + approved_delta
        return dict(user)

    def set_reputation(self, user_id, approval_rate, tier, total, approved):
        user = self.items[user_id]
        if user['totalSubmissionsCount'] != total or user['approvedSubmissionsCount'] != approved:
            raise conditional_failure()
        user['approvalRate'] = approval_rate
        user['tier'] = tier
        return dict(user)


class FakeSubmissionStore:
    def __init__(self):
        self.items = {}
        self.create_error = None

    def add(self, submission):
        self.items[submission['submissionId']] = dict(submission)

    def get(self, submission_id, consistent=True):
        if submission_id not in self.items:
            raise NotFound('Submission not found')
        return dict(self.items[submission_id])

    def create(self, submission):
        if self.create_error:
            raise self.create_error
        self.items[submission['submissionId']] = dict(submission)
        return submission

    def find_active_for_user(self, user_id, project_id):
        return [
            s for s in self.items.values()
            if s['userId'] == user_id and s['projectId'] == project_id
            and s.get('status') in SubmissionStatus.ACTIVE
        ]

    def count_non_rejected(self, project_id):
        return len([
            s for s in self.items.values()
            if s['projectId'] == project_id and s.get('status') != SubmissionStatus.REJECTED
        ])

    def find_locked_by(self, user_id, project_id):
        return [
            s for s in self.items.values()
            if s['projectId'] == project_id and s.get('isLocked') and s.get('lockedBy') == user_id
        ]

    def update_review(self, submission_id, expected_status, new_status, reviewer_id, feedback=None):
        item = self.items[submission_id]
        if item.get('status') != expected_status:
            raise conditional_failure()
        was_counted = bool(item.get('ledgerApplied'))
        item.update(status=new_status, reviewedBy=reviewer_id, reviewTimestamp=NOW.isoformat(), ledgerApplied=True)
        if feedback is not None:
            item['adminFeedback'] = feedback
        return dict(item), was_counted


@pytest.fixture
def projects():
    return FakeProjectStore([
        {
            'projectId': 'proj-task',
            'title': 'Chat sentiment batch',
            'taskType': 'Chat_Sentiment',
            'paymentType': 'PER_TASK',
            'payRate': Decimal('2.50'),
        },
        {
            'projectId': 'proj-hourly',
            'title': 'Code review',
            'taskType': 'Code_Evaluation',
            'paymentType': 'HOURLY',
            'payRate': Decimal('30'),
        },
        {
            'projectId': 'proj-repeat',
            'title': 'Model comparison',
            'taskType': 'Model_Comparison',
            'paymentType': 'PER_TASK',
            'payRate': Decimal('1.00'),
        },
    ])


@pytest.fixture
def users():
    return FakeUserStore([
        {'userId': f'user-{n}', 'totalSubmissionsCount': 0, 'approvedSubmissionsCount': 0, 'tier': 'Bronze'}
        for n in range(1, 4)
    ])


@pytest.fixture
def submission_store():
    return FakeSubmissionStore()


@pytest.fixture
def make_controller(projects, submission_store, users):
    """Build a controller over the fakes; keyword overrides replace collaborators."""
    def _make(score=80, verdict=None, mode=CapacityMode.LENIENT, **overrides):
        engine = MagicMock()
        engine.evaluate.return_value = verdict or {'status': 'PENDING', 'reason': 'Needs a human look.'}
        parts = dict(
            projects=projects,
            submissions=submission_store,
            users=users,
            task_pool=MagicMock(),
            lock=MagicMock(),
            capacity=CapacityTracker(submission_store, projects, mode=mode),
            engine=engine,
            ledger=ReputationLedger(users),
            sink=MagicMock(),
            audit=MagicMock(),
            score_fn=lambda: score,
            clock=lambda: NOW,
        )
        parts.update(overrides)
        return SubmissionController(**parts)
    return _make
