from shared.auth import get_user_sub
from shared.errors import InvalidInput
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
    Handler for submitting work on a project.
    POST /projects/{projectId}/submit
    Body: { "content": "...", "timeSpentMinutes": 45, "taskIndex": 3 }
    """
    log_event(event)
    try:
        project_id = get_path_param(event, 'projectId')
        user_id = get_user_sub(event)
        if not project_id or not user_id:
            raise InvalidInput('Project ID and User ID are required.')

        body = parse_body(event)
        result = get_controller().submit(
            project_id,
            user_id,
            body.get('content'),
            time_spent_minutes=body.get('timeSpentMinutes'),
            task_index=body.get('taskIndex')
        )
        return format_response(201, result)

    except Exception as e:
        logger.warning(f"Error submitting work: {str(e)}")
        return error_response(e)
