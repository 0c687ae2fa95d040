from shared.auth import get_user_sub, is_admin
from shared.errors import Forbidden
from shared.logging import logger, log_event
from shared.submissions import build_controller
from shared.utils import format_response, error_response, parse_body

_controller = None


def get_controller():
    global _controller
    if _controller is None:
        _controller = build_controller()
    return _controller


def handler(event, context):
    """
    Handler for approving or rejecting many submissions at once.
    PUT /submissions/bulk-review
    Body: { "submissionIds": [...], "status": "Approved" | "Rejected", "adminFeedback": "..." }
    """
    log_event(event)
    try:
        if not is_admin(event):
            raise Forbidden('Admin access required.')

        body = parse_body(event)
        status = body.get('status')
        result = get_controller().bulk_review(
            body.get('submissionIds'),
            get_user_sub(event),
            status,
            feedback=body.get('adminFeedback')
        )
        result['message'] = (
            f"Bulk review completed: {result['processedCount']} submission(s) {status.lower()}, "
            f"{result['failedCount']} failed"
        )
        return format_response(200, result)

    except Exception as e:
        logger.warning(f"Error in bulk review: {str(e)}")
        return error_response(e)
