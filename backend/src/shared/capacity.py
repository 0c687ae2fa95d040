"""
Per-project submission cap.

Lenient mode (default) counts non-rejected submissions on every call and
compares against maxTotalSubmissions. The count and the later insert are not
atomic, so concurrent submitters can overshoot the cap slightly.

Strict mode keeps a running activeSubmissionsCount on the project and
reserves a slot with a conditional atomic increment, so the cap is exact.
Slots are given back when a submission ends up Rejected.
"""
from typing import Any, Dict, Optional
from botocore.exceptions import ClientError
from .config import config
from .dynamo import is_conditional_failure
from .errors import CapacityExceeded
from .logging import logger
from .models import CapacityMode


def submission_ceiling(project: Dict[str, Any]) -> Optional[int]:
    """The project's maxTotalSubmissions as int, or None when unlimited."""
    ceiling = project.get('maxTotalSubmissions')
    if ceiling is None or ceiling == '':
        return None
    return int(ceiling)


class CapacityTracker:
    """Decides whether a project still accepts submissions."""

    def __init__(self, submission_store, project_store, mode: str = None):
        self.submissions = submission_store
        self.projects = project_store
        self.mode = (mode or config.CAPACITY_MODE).lower()

    @property
    def strict(self) -> bool:
        return self.mode == CapacityMode.STRICT

    def has_capacity(self, project: Dict[str, Any]) -> bool:
        """
        True iff the project has no ceiling or its non-rejected count is below it.
        Re-evaluated on every call since rejections free capacity.
        """
        ceiling = submission_ceiling(project)
        if ceiling is None:
            return True
        current = self.submissions.count_non_rejected(project['projectId'])
        if current >= ceiling:
            logger.info(
                f"[SUBMISSION LIMIT] Project {project['projectId']} has reached its maximum "
                f"submission limit ({current}/{ceiling})"
            )
            return False
        return True

    def reserve(self, project: Dict[str, Any]) -> bool:
        """
        Gate a new submission.

        Returns True when a strict-mode slot was taken (the caller must give it
        back with release() if the submission is not kept as non-rejected).

        Raises:
            CapacityExceeded: the project is full
        """
        ceiling = submission_ceiling(project)
        if ceiling is None:
            return False

        if not self.strict:
            if not self.has_capacity(project):
                raise CapacityExceeded('This project has reached its maximum submission limit.')
            return False

        try:
            count = self.projects.increment_active_count(project['projectId'], ceiling=ceiling)
        except ClientError as e:
            if not is_conditional_failure(e):
                raise
            logger.info(f"[SUBMISSION LIMIT] Project {project['projectId']} is full ({ceiling} slots)")
            raise CapacityExceeded('This project has reached its maximum submission limit.')
        logger.info(f"[SUBMISSION LIMIT] Reserved slot {count}/{ceiling} on project {project['projectId']}")
        return True

    def release(self, project: Dict[str, Any]) -> None:
        """Give a strict-mode slot back. No-op in lenient mode or for uncapped projects."""
        if self.strict and submission_ceiling(project) is not None:
            self.projects.decrement_active_count(project['projectId'])

    def restore(self, project: Dict[str, Any]) -> None:
        """Re-occupy a slot after a Rejected submission is approved on review (may exceed the cap)."""
        if self.strict and submission_ceiling(project) is not None:
            self.projects.increment_active_count(project['projectId'])
