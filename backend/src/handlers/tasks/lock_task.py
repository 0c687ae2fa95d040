from shared.auth import get_user_sub
from shared.errors import InvalidInput
from shared.logging import logger, log_event
from shared.utils import format_response, error_response, get_path_param
from shared.work_unit_lock import WorkUnitLock

_lock = None


def get_lock():
    global _lock
    if _lock is None:
        _lock = WorkUnitLock()
    return _lock


def handler(event, context):
    """
    Handler for locking a task for the calling worker.
    POST /worker/tasks/{taskId}/lock
    """
    log_event(event)
    try:
        task_id = get_path_param(event, 'taskId')
        user_id = get_user_sub(event)
        if not task_id or not user_id:
            raise InvalidInput('Task ID and User ID are required.')

        task = get_lock().acquire(task_id, user_id)
        return format_response(200, {
            "message": "Task locked successfully",
            "task": task
        })

    except Exception as e:
        logger.warning(f"Error locking task: {str(e)}")
        return error_response(e)
