"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the submission service.
"""
import os


def _csv(value: str) -> list:
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # DynamoDB Tables
    PROJECTS_TABLE = os.environ.get('PROJECTS_TABLE', '')
    SUBMISSIONS_TABLE = os.environ.get('SUBMISSIONS_TABLE', '')
    USERS_TABLE = os.environ.get('USERS_TABLE', '')
    TASK_POOL_TABLE = os.environ.get('TASK_POOL_TABLE', '')
    AUDIT_LOG_TABLE = os.environ.get('AUDIT_LOG_TABLE', '')
    NOTIFICATIONS_TABLE = os.environ.get('NOTIFICATIONS_TABLE', '')

    # Submissions table GSIs
    SUBMISSIONS_BY_PROJECT_INDEX = os.environ.get('SUBMISSIONS_BY_PROJECT_INDEX', 'byProject')
    SUBMISSIONS_BY_USER_INDEX = os.environ.get('SUBMISSIONS_BY_USER_INDEX', 'byUser')
    DYNAMODB_TIMEOUT_SECONDS = float(os.environ.get('DYNAMODB_TIMEOUT_SECONDS', '3'))

    # SQS Queues
    NOTIFICATION_QUEUE_URL = os.environ.get('NOTIFICATION_QUEUE_URL', '')

    # AI Triage Configuration
    TRIAGE_PROVIDER = os.environ.get('TRIAGE_PROVIDER', 'bedrock')  # bedrock | sagemaker
    TRIAGE_MODEL_ID = os.environ.get('TRIAGE_MODEL_ID', '')
    SAGEMAKER_ENDPOINT_NAME = os.environ.get('SAGEMAKER_ENDPOINT_NAME', '')
    TRIAGE_TIMEOUT_SECONDS = float(os.environ.get('TRIAGE_TIMEOUT_SECONDS', '10'))
    TRIAGE_TEMPERATURE = float(os.environ.get('TRIAGE_TEMPERATURE', '0.2'))
    TRIAGE_MAX_TOKENS = int(os.environ.get('TRIAGE_MAX_TOKENS', '150'))

    # Auto-triage thresholds (local quality score, 0-100)
    AUTO_APPROVE_THRESHOLD = int(os.environ.get('AUTO_APPROVE_THRESHOLD', '98'))
    HUMAN_REVIEW_THRESHOLD = int(os.environ.get('HUMAN_REVIEW_THRESHOLD', '70'))
    AUTO_APPROVAL_SCORE = int(os.environ.get('AUTO_APPROVAL_SCORE', '90'))
    AUTO_APPROVAL_DELAY_DAYS = int(os.environ.get('AUTO_APPROVAL_DELAY_DAYS', '3'))
    CONSISTENCY_SCORE_THRESHOLD = int(os.environ.get('CONSISTENCY_SCORE_THRESHOLD', '80'))
    CONSISTENCY_MIN_LENGTH = int(os.environ.get('CONSISTENCY_MIN_LENGTH', '50'))

    # Task types a worker may submit more than once per project
    REPEATABLE_TASK_TYPES = _csv(os.environ.get('REPEATABLE_TASK_TYPES', 'Model_Comparison,Image_Annotation'))

    # 'lenient' = count-then-compare, 'strict' = atomic counter on the project
    CAPACITY_MODE = os.environ.get('CAPACITY_MODE', 'lenient').lower()

    # Notifications
    MAX_IN_APP_NOTIFICATIONS = int(os.environ.get('MAX_IN_APP_NOTIFICATIONS', '20'))


config = Config()
