"""
Common utility functions for Lambda handlers.
"""
import json
from decimal import Decimal
from typing import Any, Dict
from shared.errors import MarketplaceError
from shared.logging import logger


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types from DynamoDB."""

    def default(self, o):
        if isinstance(o, Decimal):
            # Whole numbers as int, money and rates as float
            if o % 1 == 0:
                return int(o)
            return float(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """
    Format a standard API Gateway response with CORS headers.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)
        headers: Additional headers to include

    Returns:
        API Gateway response dict
    """
    default_headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Credentials': True,
        'Content-Type': 'application/json'
    }

    if headers:
        default_headers.update(headers)

    return {
        'statusCode': status_code,
        'headers': default_headers,
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error: Exception) -> Dict[str, Any]:
    """
    Map an exception to an API response.

    Marketplace errors carry their own status code and message; anything
    else is logged with its traceback and reported as a 500.
    """
    if isinstance(error, MarketplaceError):
        return format_response(error.status_code, {'message': error.message, 'code': error.code})
    logger.exception(f"Unhandled error: {error}")
    return format_response(500, {'message': 'Internal server error'})


def parse_body(event: dict) -> dict:
    """
    Safely parse JSON body from API Gateway event.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        Parsed body dict or empty dict if invalid
    """
    try:
        body = event.get('body') or '{}'
        if isinstance(body, str):
            body = json.loads(body)
        return body if isinstance(body, dict) else {}
    except (json.JSONDecodeError, TypeError):
        return {}


def get_path_param(event: dict, param_name: str) -> str:
    """Extract path parameter from event."""
    try:
        return event['pathParameters'][param_name]
    except (KeyError, TypeError):
        return None
