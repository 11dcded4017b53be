"""
Event model.

Turns loosely-shaped caller input into an immutable ``Event`` and renders the
wire payloads for the track and import endpoints.

Identity and context fields are promoted out of the generic properties bag:

    caller key      wire key
    ----------      --------
    device_id   ->  $device_id
    user_id     ->  $user_id
    ip          ->  ip
    time        ->  time (unix seconds)

The ``token`` (and, for imports, ``project_id``) keys are left as ``None``;
they are filled in by ``mixpanel_driver.auth`` right before sending.
"""

import time as _time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from . import validation
from .exceptions import EmptyEventNameError, ValidationError

USER_ID_FIELD = "user_id"
IP_FIELD = "ip"
NAME_FIELD = "event"


@dataclass(frozen=True)
class Event:
    """
    A single validated analytics fact.

    ``properties`` is stored read-only all the way down: nested dicts become
    ``MappingProxyType`` and lists become tuples.
    """

    name: str
    device_id: str
    time: int
    properties: Mapping[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    ip: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "properties", _freeze(self.properties))

    @classmethod
    def create(cls, name: str, properties: Dict[str, Any]) -> "Event":
        """
        Build an event for the track endpoint.

        Args:
            name: Event name
            properties: Properties with required ``device_id`` and optional
                ``user_id``, ``ip`` and ``time`` (datetime or unix seconds)

        Raises:
            ValidationError: If the candidate fails any validation rule

        Example:
            event = Event.create("purchase", {"device_id": "d1", "amount": 99.99})
        """
        validation.validate(name, properties)

        bag = dict(properties)
        device_id = bag.pop(validation.IDENTITY_FIELD)
        user_id = bag.pop(USER_ID_FIELD, None)
        ip = bag.pop(IP_FIELD, None)
        timestamp = normalize_time(bag.pop(validation.TIME_FIELD, None))

        return cls(
            name=name,
            device_id=device_id,
            time=timestamp,
            properties=bag,
            user_id=user_id,
            ip=ip,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Event":
        """
        Build an event from a flat mapping where ``event`` holds the name.

        Example:
            Event.from_mapping({"event": "signup", "device_id": "d1", "time": 1672531200})
        """
        if isinstance(data, Event):
            return data
        if not isinstance(data, Mapping):
            raise ValidationError(
                "event must be a mapping",
                details={"provided": type(data).__name__}
            )
        if NAME_FIELD not in data:
            raise EmptyEventNameError("event name is required")

        properties = {k: v for k, v in data.items() if k != NAME_FIELD}
        return cls.create(data[NAME_FIELD], properties)

    def to_track_payload(self) -> Dict[str, Any]:
        """Live payload for ``POST /track``."""
        properties = _thaw(self.properties)
        properties["$device_id"] = self.device_id
        if self.user_id is not None:
            properties["$user_id"] = self.user_id
        if self.ip is not None:
            properties[IP_FIELD] = self.ip
        properties["time"] = self.time
        properties["token"] = None

        return {"event": self.name, "properties": properties}

    def to_import_payload(self) -> Dict[str, Any]:
        """
        Historical payload for ``POST /import``.

        Same shape as the live payload; ``time`` may be arbitrarily far in the
        past and ``project_id`` scopes the record to the service account's project.
        """
        payload = self.to_track_payload()
        payload["properties"]["project_id"] = None
        return payload


def normalize_time(value: Any) -> int:
    """
    Convert a caller-supplied time to unix seconds.

    datetime -> its unix timestamp (naive datetimes are taken as UTC)
    int      -> used as-is
    None     -> current time
    """
    if value is None:
        return int(_time.time())

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())

    if isinstance(value, int) and not isinstance(value, bool):
        return value

    raise ValidationError(
        "time must be a datetime or an integer unix timestamp",
        details={"provided": type(value).__name__}
    )


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    """Rebuild plain dicts and lists from a frozen value."""
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    return value
