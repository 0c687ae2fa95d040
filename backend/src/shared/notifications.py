"""
Notification sinks for submission lifecycle events.

The controller is handed a sink at construction time. Every sink is
fire-and-forget: notify() never raises into the caller, whatever the
transport does. Push and email delivery happen downstream of the SQS queue.
"""
import json
import boto3
from boto3.dynamodb.conditions import Key
from botocore.config import Config as BotoConfig
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
from .config import config
from .dynamo import get_table, to_decimal
from .logging import logger, log_side_effect_failure
from .models import NotificationEvent

DEFAULT_REJECTION_FEEDBACK = (
    'No specific feedback provided. Please review the project guidelines and your submission.'
)

# Records past the limit removed per write
TRIM_BATCH = 10

_sqs_client = None


def get_sqs_client():
    """Get or create SQS client with short timeouts."""
    global _sqs_client
    if _sqs_client is None:
        _sqs_client = boto3.client(
            'sqs',
            region_name=config.AWS_REGION,
            config=BotoConfig(connect_timeout=2, read_timeout=2, retries={'max_attempts': 2})
        )
    return _sqs_client


def event_for_status(status: str) -> str:
    if status == 'Approved':
        return NotificationEvent.SUBMISSION_APPROVED
    if status == 'Rejected':
        return NotificationEvent.SUBMISSION_REJECTED
    return NotificationEvent.SUBMISSION_RECEIVED


def build_payload(submission: Dict[str, Any], project_title: Optional[str], user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the event payload for a submission's current status.

    Args:
        submission: Persisted submission item
        project_title: Title used in the message ('task' when unknown)
        user: Worker profile after any ledger update, for tier/approvalRate
    """
    title = project_title or 'task'
    status = submission.get('status')
    amount = float(submission.get('paymentAmount', 0))

    if status == 'Approved':
        message = f"Your submission for '{title}' was approved. You've earned ${amount:.2f}."
        kind = 'success'
    elif status == 'Rejected':
        message = f"Your submission for '{title}' was rejected. Please review the feedback and resubmit."
        kind = 'error'
    else:
        message = f"Your submission for '{title}' was received and is awaiting review."
        kind = 'info'

    payload = {
        'message': message,
        'type': kind,
        'link': f"/task/{submission.get('submissionId')}",
        'submissionId': submission.get('submissionId'),
        'projectTitle': title,
        'status': status,
        'paymentAmount': f"{amount:.2f}",
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    if user:
        payload['tier'] = user.get('tier')
        payload['approvalRate'] = f"{float(user.get('approvalRate', 0) or 0):.2f}"
    if status == 'Rejected':
        payload['feedback'] = (
            submission.get('adminFeedback') or submission.get('aiFeedback') or DEFAULT_REJECTION_FEEDBACK
        )
    return payload


class NotificationSink:
    """Interface: deliver an event to a worker, at most once, never raising."""

    def notify(self, user_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            self._send(user_id, event_type, payload)
        except Exception as e:
            log_side_effect_failure('NOTIFICATION', e, sink=type(self).__name__, user=user_id, event=event_type)

    def _send(self, user_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class NullNotificationSink(NotificationSink):
    """Drops every event (local runs, tests)."""

    def _send(self, user_id, event_type, payload):
        logger.debug(f"Notification dropped for {user_id}: {event_type}")


class SqsNotificationSink(NotificationSink):
    """Publishes events to the notification queue; push and email workers consume it."""

    def __init__(self, queue_url: str = None, client=None):
        self.queue_url = queue_url if queue_url is not None else config.NOTIFICATION_QUEUE_URL
        self._client = client

    def _send(self, user_id, event_type, payload):
        if not self.queue_url:
            logger.warning("No NOTIFICATION_QUEUE_URL configured, skipping notification")
            return
        client = self._client or get_sqs_client()
        client.send_message(
            QueueUrl=self.queue_url,
            MessageBody=json.dumps({
                'userId': user_id,
                'eventType': event_type,
                'payload': payload
            }, default=str)
        )
        logger.info(f"[NOTIFICATION] Queued {event_type} for user {user_id}")


class InAppNotificationSink(NotificationSink):
    """Stores the notification shown in the worker's notification bell."""

    def __init__(self, table=None):
        self._table = table

    @property
    def table(self):
        if self._table is None:
            self._table = get_table(config.NOTIFICATIONS_TABLE)
        return self._table

    def _send(self, user_id, event_type, payload):
        created_at = payload.get('timestamp') or datetime.now(timezone.utc).isoformat()
        item = {
            'userId': user_id,
            'createdAt': created_at,
            'eventType': event_type,
            'message': payload.get('message', ''),
            'type': payload.get('type', 'info'),
            'link': payload.get('link'),
            'isRead': False,
        }
        if payload.get('paymentAmount') is not None:
            item['paymentAmount'] = to_decimal(payload['paymentAmount'])
        self.table.put_item(Item=item)
        logger.info(f"[NOTIFICATION] Saved in-app notification for user {user_id}: {item['message']}")
        self._trim(user_id)

    def _trim(self, user_id):
        """
        Keep only the newest MAX_IN_APP_NOTIFICATIONS records for the worker.

        Reads one bounded page newest-first; the sink trims on every write, so
        at most a few records sit past the limit.
        """
        response = self.table.query(
            KeyConditionExpression=Key('userId').eq(user_id),
            ScanIndexForward=False,
            ProjectionExpression='userId, createdAt',
            Limit=config.MAX_IN_APP_NOTIFICATIONS + TRIM_BATCH
        )
        excess = response.get('Items', [])[config.MAX_IN_APP_NOTIFICATIONS:]
        for note in excess:
            self.table.delete_item(Key={'userId': user_id, 'createdAt': note['createdAt']})
        if excess:
            logger.info(f"[NOTIFICATION] Trimmed {len(excess)} old notification(s) for user {user_id}")


class CompositeNotificationSink(NotificationSink):
    """Fans an event out to several sinks; one failing sink does not stop the others."""

    def __init__(self, sinks: Iterable[NotificationSink]):
        self.sinks = list(sinks)

    def _send(self, user_id, event_type, payload):
        for sink in self.sinks:
            sink.notify(user_id, event_type, payload)


def default_sink() -> NotificationSink:
    """Sink wired from configuration: in-app records plus the delivery queue."""
    sinks = []
    if config.NOTIFICATIONS_TABLE:
        sinks.append(InAppNotificationSink())
    if config.NOTIFICATION_QUEUE_URL:
        sinks.append(SqsNotificationSink())
    if not sinks:
        return NullNotificationSink()
    return CompositeNotificationSink(sinks)
