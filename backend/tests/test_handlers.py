"""
Tests for the API Gateway handlers.
"""
import json
import pytest
from unittest.mock import MagicMock, patch

from shared.errors import AlreadyLocked, DuplicateSubmission, NotFound, NotOwner


def api_event(user_id='user-1', groups='freelancer', path=None, body=None):
    return {
        'pathParameters': path or {},
        'body': json.dumps(body) if body is not None else None,
        'requestContext': {
            'authorizer': {'claims': {'sub': user_id, 'cognito:groups': groups}}
        }
    }


def parsed(response):
    return response['statusCode'], json.loads(response['body'])


class TestLockHandlers:
    """Tests for lock and unlock endpoints."""

    def test_lock_success(self):
        from handlers.tasks import lock_task

        lock = MagicMock()
        lock.acquire.return_value = {'submissionId': 'unit-1', 'isLocked': True, 'lockedBy': 'user-1'}
        with patch.object(lock_task, 'get_lock', return_value=lock):
            status, body = parsed(lock_task.handler(api_event(path={'taskId': 'unit-1'}), None))

        assert status == 200
        assert body['task']['lockedBy'] == 'user-1'
        lock.acquire.assert_called_once_with('unit-1', 'user-1')

    def test_lock_conflict(self):
        from handlers.tasks import lock_task

        lock = MagicMock()
        lock.acquire.side_effect = AlreadyLocked()
        with patch.object(lock_task, 'get_lock', return_value=lock):
            status, body = parsed(lock_task.handler(api_event(path={'taskId': 'unit-1'}), None))

        assert status == 409
        assert body['code'] == 'ALREADY_LOCKED'
        assert body['message'] == 'Task is currently unavailable or locked by another user.'

    def test_lock_requires_task_id(self):
        from handlers.tasks import lock_task

        with patch.object(lock_task, 'get_lock') as get_lock:
            status, _ = parsed(lock_task.handler(api_event(), None))

        assert status == 400
        get_lock.assert_not_called()

    def test_unlock_not_owner(self):
        from handlers.tasks import unlock_task

        lock = MagicMock()
        lock.release.side_effect = NotOwner()
        with patch.object(unlock_task, 'get_lock', return_value=lock):
            status, _ = parsed(unlock_task.handler(api_event(path={'taskId': 'unit-1'}), None))

        assert status == 403


class TestSubmitHandler:
    """Tests for POST /projects/{projectId}/submit."""

    def test_created(self):
        from handlers.submissions import submit_work

        controller = MagicMock()
        controller.submit.return_value = {'message': 'ok', 'status': 'Pending', 'aiScore': 80}
        event = api_event(path={'projectId': 'proj-1'}, body={'content': 'Positive', 'timeSpentMinutes': 30, 'taskIndex': 2})
        with patch.object(submit_work, 'get_controller', return_value=controller):
            status, body = parsed(submit_work.handler(event, None))

        assert status == 201
        assert body['status'] == 'Pending'
        controller.submit.assert_called_once_with(
            'proj-1', 'user-1', 'Positive', time_spent_minutes=30, task_index=2
        )

    def test_duplicate_maps_to_400(self):
        from handlers.submissions import submit_work

        controller = MagicMock()
        controller.submit.side_effect = DuplicateSubmission('You have already submitted this task.')
        event = api_event(path={'projectId': 'proj-1'}, body={'content': 'Positive'})
        with patch.object(submit_work, 'get_controller', return_value=controller):
            status, body = parsed(submit_work.handler(event, None))

        assert status == 400
        assert body['message'] == 'You have already submitted this task.'

    def test_unexpected_error_is_500(self):
        from handlers.submissions import submit_work

        controller = MagicMock()
        controller.submit.side_effect = RuntimeError('boom')
        event = api_event(path={'projectId': 'proj-1'}, body={'content': 'Positive'})
        with patch.object(submit_work, 'get_controller', return_value=controller):
            status, body = parsed(submit_work.handler(event, None))

        assert status == 500
        assert body['message'] == 'Internal server error'

    def test_unauthenticated(self):
        from handlers.submissions import submit_work

        event = {'pathParameters': {'projectId': 'proj-1'}, 'body': '{}'}
        with patch.object(submit_work, 'get_controller') as get_controller:
            status, _ = parsed(submit_work.handler(event, None))

        assert status == 400
        get_controller.assert_not_called()


class TestReviewHandlers:
    """Tests for the admin review endpoints."""

    def test_review_requires_admin(self):
        from handlers.submissions import review_submission

        event = api_event(path={'submissionId': 'sub-1'}, body={'status': 'Approved'})
        with patch.object(review_submission, 'get_controller') as get_controller:
            status, _ = parsed(review_submission.handler(event, None))

        assert status == 403
        get_controller.assert_not_called()

    def test_review_as_admin(self):
        from handlers.submissions import review_submission

        controller = MagicMock()
        controller.review.return_value = {'submissionId': 'sub-1', 'status': 'Rejected'}
        event = api_event(
            user_id='admin-1', groups='admin', path={'submissionId': 'sub-1'},
            body={'status': 'Rejected', 'adminFeedback': 'Wrong label'}
        )
        with patch.object(review_submission, 'get_controller', return_value=controller):
            status, body = parsed(review_submission.handler(event, None))

        assert status == 200
        assert body['submission']['status'] == 'Rejected'
        controller.review.assert_called_once_with('sub-1', 'admin-1', 'Rejected', feedback='Wrong label')

    def test_bulk_review_summary(self):
        from handlers.submissions import bulk_review

        controller = MagicMock()
        controller.bulk_review.return_value = {
            'processedCount': 2, 'failedCount': 1, 'totalRequested': 3,
            'errors': [{'submissionId': 'missing', 'error': 'Submission not found'}]
        }
        event = api_event(
            user_id='admin-1', groups=['admin'],
            body={'submissionIds': ['a', 'missing', 'b'], 'status': 'Approved'}
        )
        with patch.object(bulk_review, 'get_controller', return_value=controller):
            status, body = parsed(bulk_review.handler(event, None))

        assert status == 200
        assert body['processedCount'] == 2
        assert body['totalRequested'] == 3
        assert body['message'] == 'Bulk review completed: 2 submission(s) approved, 1 failed'

    def test_bulk_review_invalid_payload(self):
        from handlers.submissions import bulk_review
        from shared.errors import InvalidInput

        controller = MagicMock()
        controller.bulk_review.side_effect = InvalidInput('submissionIds must be a non-empty array')
        event = api_event(groups='admin', body={'submissionIds': [], 'status': 'Approved'})
        with patch.object(bulk_review, 'get_controller', return_value=controller):
            status, _ = parsed(bulk_review.handler(event, None))

        assert status == 400

    def test_review_score_not_found(self):
        from handlers.submissions import review_score

        controller = MagicMock()
        controller.suggest_review_score.side_effect = NotFound('Submission not found')
        event = api_event(groups='admin', path={'submissionId': 'missing'})
        with patch.object(review_score, 'get_controller', return_value=controller):
            status, body = parsed(review_score.handler(event, None))

        assert status == 404
        assert body['message'] == 'Submission not found'

    def test_review_score(self):
        from handlers.submissions import review_score

        controller = MagicMock()
        controller.suggest_review_score.return_value = {'aiScore': 91, 'aiFeedback': 'Excellent clarity.'}
        event = api_event(groups='admin', path={'submissionId': 'sub-1'})
        with patch.object(review_score, 'get_controller', return_value=controller):
            status, body = parsed(review_score.handler(event, None))

        assert status == 200
        assert body == {'aiScore': 91, 'aiFeedback': 'Excellent clarity.', 'submissionId': 'sub-1'}
