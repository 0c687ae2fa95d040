"""
Work unit locking.

A worker must hold the lock on a work unit (a submission slot) before working
on it. Acquire is a single conditional UpdateItem on isLocked, so two workers
racing for the same unit cannot both pass: DynamoDB evaluates the condition
and applies the write atomically. No in-process lock is involved.
"""
from typing import Any, Dict
from botocore.exceptions import ClientError
from .config import config
from .dynamo import get_table, get_item, update_item, is_conditional_failure
from .errors import AlreadyLocked, NotFound, NotOwner
from .logging import logger
from .stores import utc_now_iso


class WorkUnitLock:
    """Compare-and-swap lock over the isLocked/lockedBy attributes."""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(config.SUBMISSIONS_TABLE)

    def acquire(self, work_unit_id: str, user_id: str) -> Dict[str, Any]:
        """
        Lock a work unit for a user.

        Args:
            work_unit_id: Submission id of the unit
            user_id: Worker taking the unit

        Returns:
            The unit's attributes after locking

        Raises:
            NotFound: the id does not resolve
            AlreadyLocked: another user holds the lock
        """
        try:
            unit = update_item(
                self.table,
                key={'submissionId': work_unit_id},
                update_expression='SET isLocked = :true, lockedBy = :user, lockedAt = :ts',
                expression_values={
                    ':true': True,
                    ':false': False,
                    ':user': user_id,
                    ':ts': utc_now_iso()
                },
                condition='attribute_exists(submissionId) AND (attribute_not_exists(isLocked) OR isLocked = :false)'
            )
        except ClientError as e:
            if not is_conditional_failure(e):
                raise
            return self._explain_failed_acquire(work_unit_id, user_id)

        logger.info(f"[TASK LOCK] Work unit {work_unit_id} locked by {user_id}")
        return unit

    def _explain_failed_acquire(self, work_unit_id: str, user_id: str) -> Dict[str, Any]:
        existing = get_item(self.table, {'submissionId': work_unit_id}, consistent=True)
        if not existing:
            raise NotFound('Task not found.')
        if existing.get('lockedBy') == user_id:
            # Re-acquiring your own lock is a no-op
            return existing
        logger.info(f"[TASK LOCK] Work unit {work_unit_id} already locked by {existing.get('lockedBy')}")
        raise AlreadyLocked('Task is currently unavailable or locked by another user.')

    def release(self, work_unit_id: str, user_id: str) -> Dict[str, Any]:
        """
        Unlock a work unit held by user_id.

        Releasing an unlocked unit succeeds without changes.

        Raises:
            NotFound: the id does not resolve
            NotOwner: the unit is locked by a different user
        """
        try:
            unit = update_item(
                self.table,
                key={'submissionId': work_unit_id},
                update_expression='SET isLocked = :false REMOVE lockedBy, lockedAt',
                expression_values={':false': False, ':user': user_id},
                condition='attribute_exists(submissionId) AND lockedBy = :user'
            )
        except ClientError as e:
            if not is_conditional_failure(e):
                raise
            existing = get_item(self.table, {'submissionId': work_unit_id}, consistent=True)
            if not existing:
                raise NotFound('Task not found.')
            if existing.get('isLocked') and existing.get('lockedBy') not in (None, user_id):
                logger.error(
                    f"[TASK UNLOCK ERROR] User {user_id} attempted to unlock {work_unit_id} "
                    f"locked by {existing.get('lockedBy')}"
                )
                raise NotOwner('You are not authorized to unlock this task. Only the user who locked it can unlock it.')
            logger.info(f"[TASK UNLOCK] Work unit {work_unit_id} was already unlocked")
            return existing

        logger.info(f"[TASK UNLOCK] Work unit {work_unit_id} released by {user_id}")
        return unit
