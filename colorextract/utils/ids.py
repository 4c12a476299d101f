"""
colorextract Identifier Utilities
Request and task identifiers for tracing work across the worker boundary.
"""
import uuid
from datetime import datetime


def generate_request_id(prefix: str = "pal") -> str:
    """
    Generate a unique request ID for tracking.

    Args:
        prefix: Short tag identifying the kind of request

    Returns:
        Unique request ID string
    """
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    short_uuid = str(uuid.uuid4())[:8]
    return f"{prefix}-{timestamp}-{short_uuid}"


def new_task_id() -> str:
    """UUID for a single region task."""
    return str(uuid.uuid4())

