from shared.auth import is_admin
from shared.errors import Forbidden, InvalidInput
from shared.logging import logger, log_event
from shared.submissions import build_controller
from shared.utils import format_response, error_response, get_path_param

_controller = None


def get_controller():
    global _controller
    if _controller is None:
        _controller = build_controller()
    return _controller


def handler(event, context):
    """
    Handler returning a reviewer-assist quality score for a submission.
    GET /admin/review-score/{submissionId}
    """
    log_event(event)
    try:
        if not is_admin(event):
            raise Forbidden('Admin access required.')

        submission_id = get_path_param(event, 'submissionId')
        if not submission_id:
            raise InvalidInput('Submission ID is required.')

        result = get_controller().suggest_review_score(submission_id)
        result['submissionId'] = submission_id
        return format_response(200, result)

    except Exception as e:
        logger.warning(f"Error generating review score: {str(e)}")
        return error_response(e)
