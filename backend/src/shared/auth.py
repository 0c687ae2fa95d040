"""
Authentication utilities for extracting user info from Cognito tokens.
"""
from typing import Optional
from shared.models import UserRole


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        User sub string or None if not authenticated
    """
    try:
        return event['requestContext']['authorizer']['claims']['sub']
    except (KeyError, TypeError):
        return None


def get_user_groups(event: dict) -> list:
    """Extract user groups (freelancer, admin) from Cognito claims."""
    try:
        groups = event['requestContext']['authorizer']['claims'].get('cognito:groups', '')
        if isinstance(groups, str):
            return groups.split(',') if groups else []
        return groups or []
    except (KeyError, TypeError, AttributeError):
        return []


def is_admin(event: dict) -> bool:
    """Check if user belongs to admin group."""
    return any(g.strip().lower() == UserRole.ADMIN.lower() for g in get_user_groups(event))
