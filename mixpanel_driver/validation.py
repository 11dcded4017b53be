"""
Event validation.

Pure checks applied to every event before it is buffered or sent. Each check
raises the matching ``ValidationError`` subclass; ``validate`` runs them in a
fixed order and stops at the first failure.
"""

import json
from typing import Any, Dict, List

from .exceptions import (
    ValidationError,
    EmptyEventNameError,
    MissingIdentityError,
    PayloadSizeError,
    TooManyPropertiesError,
    NestingTooDeepError,
    EmptyBatchError,
    BatchTooLargeError,
)

MAX_EVENT_SIZE_BYTES = 1 * 1024 * 1024  # 1 MB
MAX_PROPERTIES = 255
MAX_NESTING_DEPTH = 3
MAX_BATCH_EVENTS = 2000

IDENTITY_FIELD = "device_id"
TIME_FIELD = "time"


def validate(name: Any, properties: Dict[str, Any]) -> None:
    """
    Validate an event candidate.

    Args:
        name: Event name
        properties: Caller-supplied properties, including device_id and optional time

    Raises:
        EmptyEventNameError: name is empty or not a string
        MissingIdentityError: device_id is missing or empty
        PayloadSizeError: serialized event exceeds 1MB
        TooManyPropertiesError: more than 255 properties
        NestingTooDeepError: properties nested deeper than 3 levels
    """
    validate_event_name(name)
    validate_identity(properties)
    validate_event_size(name, properties)
    validate_property_count(properties)
    validate_nesting_depth(properties)


def validate_event_name(name: Any) -> None:
    if not isinstance(name, str):
        raise EmptyEventNameError(
            "event name must be a string",
            details={"provided": type(name).__name__}
        )
    if not name:
        raise EmptyEventNameError("event name cannot be empty")


def validate_identity(properties: Dict[str, Any]) -> None:
    if not isinstance(properties, dict):
        raise ValidationError(
            "properties must be a dict",
            details={"provided": type(properties).__name__}
        )
    if IDENTITY_FIELD not in properties or properties[IDENTITY_FIELD] is None:
        raise MissingIdentityError(f"{IDENTITY_FIELD} is required")

    device_id = properties[IDENTITY_FIELD]
    if not isinstance(device_id, str) or not device_id:
        raise MissingIdentityError(
            f"{IDENTITY_FIELD} cannot be empty",
            details={"provided": device_id}
        )


def validate_event_size(name: str, properties: Dict[str, Any]) -> None:
    # time may be a datetime at this point; it is normalized to an int later
    body = {
        "event": name,
        "properties": {k: v for k, v in properties.items() if k != TIME_FIELD},
    }
    try:
        payload = json.dumps(body)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            "properties must be JSON serializable",
            details={"error": str(e)}
        )

    payload_bytes = len(payload.encode('utf-8'))
    if payload_bytes > MAX_EVENT_SIZE_BYTES:
        raise PayloadSizeError(
            "event size exceeds 1MB limit",
            details={
                "payload_size_bytes": payload_bytes,
                "max_size_bytes": MAX_EVENT_SIZE_BYTES
            }
        )


def validate_property_count(properties: Dict[str, Any]) -> None:
    count = sum(1 for key in properties if key != TIME_FIELD)
    if count > MAX_PROPERTIES:
        raise TooManyPropertiesError(
            f"event has too many properties (max {MAX_PROPERTIES})",
            details={"property_count": count, "max_properties": MAX_PROPERTIES}
        )


def validate_nesting_depth(properties: Dict[str, Any], max_depth: int = MAX_NESTING_DEPTH) -> None:
    """
    The properties map itself is depth 1; every nested dict or list adds one level.
    """
    if _too_deep(properties, 1, max_depth):
        raise NestingTooDeepError(
            f"properties nesting too deep (max {max_depth} levels)",
            details={"max_depth": max_depth}
        )


def _too_deep(value: Any, depth: int, max_depth: int) -> bool:
    if isinstance(value, dict):
        children = value.values()
    elif isinstance(value, (list, tuple)):
        children = value
    else:
        return False

    if depth > max_depth:
        return True
    return any(_too_deep(child, depth + 1, max_depth) for child in children)


def validate_batch(events: List[Any]) -> None:
    """
    Batch-level bounds. Per-event checks still run on every member.

    Raises:
        ValidationError: events is not a list
        EmptyBatchError: no events
        BatchTooLargeError: more than 2,000 events
    """
    if not isinstance(events, list):
        raise ValidationError(
            "events must be a list",
            details={"provided": type(events).__name__}
        )

    if not events:
        raise EmptyBatchError("batch cannot be empty")

    if len(events) > MAX_BATCH_EVENTS:
        raise BatchTooLargeError(
            f"batch size exceeds maximum of {MAX_BATCH_EVENTS} events",
            details={
                "events_count": len(events),
                "max_events": MAX_BATCH_EVENTS,
                "suggestion": "Split into multiple track_many() calls"
            }
        )
