from shared.auth import get_user_sub, is_admin
from shared.errors import Forbidden, InvalidInput
from shared.logging import logger, log_event
from shared.submissions import build_controller
from shared.utils import format_response, error_response, get_path_param, parse_body

_controller = None


def get_controller():
    global _controller
    if _controller is None:
        _controller = build_controller()
    return _controller


def handler(event, context):
    """
    Handler for an admin approving or rejecting a submission.
    PUT /submissions/{submissionId}/review
    Body: { "status": "Approved" | "Rejected", "adminFeedback": "..." }
    """
    log_event(event)
    try:
        if not is_admin(event):
            raise Forbidden('Admin access required.')

        submission_id = get_path_param(event, 'submissionId')
        if not submission_id:
            raise InvalidInput('Submission ID is required.')

        body = parse_body(event)
        submission = get_controller().review(
            submission_id,
            get_user_sub(event),
            body.get('status'),
            feedback=body.get('adminFeedback')
        )
        return format_response(200, {
            "message": f"Submission {submission.get('status')}",
            "submission": submission
        })

    except Exception as e:
        logger.warning(f"Error reviewing submission: {str(e)}")
        return error_response(e)
