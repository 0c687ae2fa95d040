"""
DynamoDB utility functions shared by the stores.

Reads and writes on the primary records raise PersistenceFailure so the
caller can surface a 5xx; conditional-check failures are re-raised untouched
because they carry meaning (lock contention, concurrent review).
"""
import boto3
from decimal import Decimal
from typing import List, Dict, Any, Optional
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from .config import config
from .errors import PersistenceFailure
from .logging import logger

_dynamodb = None


def get_dynamodb():
    """Get or create the DynamoDB resource with bounded timeouts."""
    global _dynamodb
    if _dynamodb is None:
        _dynamodb = boto3.resource(
            'dynamodb',
            region_name=config.AWS_REGION,
            config=BotoConfig(
                connect_timeout=config.DYNAMODB_TIMEOUT_SECONDS,
                read_timeout=config.DYNAMODB_TIMEOUT_SECONDS,
                retries={'max_attempts': 3, 'mode': 'standard'}
            )
        )
    return _dynamodb


def get_table(table_name: str):
    """Return a Table resource for the given name."""
    return get_dynamodb().Table(table_name)


def is_conditional_failure(error: Exception) -> bool:
    """True if a ClientError is a failed ConditionExpression."""
    if not isinstance(error, ClientError):
        return False
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


def to_decimal(value) -> Decimal:
    """Convert a number to Decimal the way DynamoDB expects (via str, no float noise)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def get_item(table, key: Dict[str, Any], consistent: bool = False) -> Optional[Dict[str, Any]]:
    """Get a single item, None if absent."""
    try:
        response = table.get_item(Key=key, ConsistentRead=consistent)
        return response.get('Item')
    except ClientError as e:
        logger.exception(f"Error getting item {key} from {table.name}")
        raise PersistenceFailure(f"Could not read {key}") from e


def put_item(table, item: Dict[str, Any], condition: Optional[str] = None) -> None:
    """Put an item, optionally guarded by a condition expression."""
    params = {'Item': item}
    if condition:
        params['ConditionExpression'] = condition
    try:
        table.put_item(**params)
    except ClientError as e:
        if is_conditional_failure(e):
            raise
        logger.exception(f"Error putting item into {table.name}")
        raise PersistenceFailure("Could not save record") from e


def update_item(
    table,
    key: Dict[str, Any],
    update_expression: str,
    expression_values: Optional[Dict[str, Any]] = None,
    expression_names: Optional[Dict[str, str]] = None,
    condition: Optional[str] = None,
    return_values: str = 'ALL_NEW'
) -> Dict[str, Any]:
    """
    Update an item and return its attributes (ALL_NEW by default).

    Raises:
        ClientError: ConditionalCheckFailedException when the condition fails
        PersistenceFailure: for any other storage error
    """
    params = {
        'Key': key,
        'UpdateExpression': update_expression,
        'ReturnValues': return_values
    }
    if expression_values:
        params['ExpressionAttributeValues'] = expression_values
    if expression_names:
        params['ExpressionAttributeNames'] = expression_names
    if condition:
        params['ConditionExpression'] = condition

    try:
        response = table.update_item(**params)
        return response.get('Attributes', {})
    except ClientError as e:
        if is_conditional_failure(e):
            raise
        logger.exception(f"Error updating item {key} in {table.name}")
        raise PersistenceFailure(f"Could not update {key}") from e


def query_all(
    table,
    index_name: Optional[str] = None,
    key_condition: Optional[Any] = None,
    filter_expression: Optional[Any] = None
) -> List[Dict[str, Any]]:
    """
    Query a table or index, following LastEvaluatedKey until exhausted.

    Args:
        table: Table resource
        index_name: Optional GSI name
        key_condition: Key condition expression
        filter_expression: Optional filter expression

    Returns:
        All items matching the query
    """
    params = _query_params(index_name, key_condition, filter_expression)
    items = []
    try:
        while True:
            response = table.query(**params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            params['ExclusiveStartKey'] = last_key
    except ClientError as e:
        logger.exception(f"Error querying {table.name} ({index_name})")
        raise PersistenceFailure("Could not query records") from e


def count_items(
    table,
    index_name: Optional[str] = None,
    key_condition: Optional[Any] = None,
    filter_expression: Optional[Any] = None
) -> int:
    """Count items matching a query (Select=COUNT), across all pages."""
    params = _query_params(index_name, key_condition, filter_expression)
    params['Select'] = 'COUNT'
    total = 0
    try:
        while True:
            response = table.query(**params)
            total += int(response.get('Count', 0))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return total
            params['ExclusiveStartKey'] = last_key
    except ClientError as e:
        logger.exception(f"Error counting items in {table.name} ({index_name})")
        raise PersistenceFailure("Could not count records") from e


def _query_params(index_name, key_condition, filter_expression) -> Dict[str, Any]:
    params = {}
    if index_name:
        params['IndexName'] = index_name
    if key_condition is not None:
        params['KeyConditionExpression'] = key_condition
    if filter_expression is not None:
        params['FilterExpression'] = filter_expression
    return params
