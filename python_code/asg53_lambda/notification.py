"""
Decoding of the SNS-in-Lambda envelope that carries a lifecycle hook notification.

The payload is JSON three levels deep: the Lambda event holds SNS records, the
first record's message is a JSON string holding the lifecycle message, and the
lifecycle message's NotificationMetadata is a JSON string holding the change
batch. Each layer is logged at DEBUG so a failing event can be replayed.
"""

import json
from typing import Any, Dict, List, Mapping, Union

from aws_lambda_powertools import Logger

from .errors import DecodeError
from .model import (
    TEST_NOTIFICATION_EVENT,
    VALID_ACTIONS,
    DecodedNotification,
    LifecycleMessage,
    MutationInstruction,
    RecordChange,
    SNSEventRecord,
)

RawEvent = Union[bytes, str, Mapping[str, Any]]


def _load_json(raw: Union[bytes, str], layer: str, logger: Logger) -> Any:
    logger.debug(f"Raw {layer} JSON data", extra={"layer": layer, "raw": raw})
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
        logger.error(f"Error parsing {layer} JSON.", extra={"error": str(e)})
        raise DecodeError(f"Malformed {layer} JSON: {e}") from e


def _require_str(obj: Mapping[str, Any], key: str, where: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"{where}: '{key}' must be a string, got {value!r}")
    return value


def _parse_record_change(raw_change: Any, index: int) -> RecordChange:
    where = f"Changes[{index}]"
    if not isinstance(raw_change, dict):
        raise DecodeError(f"{where} must be an object")

    action = _require_str(raw_change, "Action", where)
    if action not in VALID_ACTIONS:
        raise DecodeError(f"{where}: unsupported Action {action!r}")

    record_set = raw_change.get("ResourceRecordSet")
    if not isinstance(record_set, dict):
        raise DecodeError(f"{where}: 'ResourceRecordSet' must be an object")
    where = f"{where}.ResourceRecordSet"

    name = _require_str(record_set, "Name", where)
    rr_type = _require_str(record_set, "Type", where)

    ttl = record_set.get("TTL")
    if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, int)):
        raise DecodeError(f"{where}: 'TTL' must be an integer, got {ttl!r}")

    raw_records = record_set.get("ResourceRecords", [])
    if not isinstance(raw_records, list):
        raise DecodeError(f"{where}: 'ResourceRecords' must be a list")
    values: List[str] = []
    for n, record in enumerate(raw_records):
        if not isinstance(record, dict):
            raise DecodeError(f"{where}.ResourceRecords[{n}] must be an object")
        values.append(_require_str(record, "Value", f"{where}.ResourceRecords[{n}]"))

    extra = {
        k: v
        for k, v in record_set.items()
        if k not in ("Name", "Type", "TTL", "ResourceRecords")
    }
    return RecordChange(
        action=action, name=name, type=rr_type, ttl=ttl, values=values, extra=extra
    )


def parse_metadata(raw: str, logger: Logger) -> MutationInstruction:
    """
    Parses the notification metadata into a MutationInstruction.

    Empty metadata yields an empty instruction. Anything else must decode to
    an object with a non-empty HostedZoneID and a list of Changes.

    Raises:
        DecodeError: If the metadata is not valid JSON or not of the expected shape.
    """
    if not raw.strip():
        return MutationInstruction()

    parsed = _load_json(raw, "metadata", logger)
    if not isinstance(parsed, dict):
        raise DecodeError("Notification metadata must be a JSON object")

    zone_id = _require_str(parsed, "HostedZoneID", "metadata")
    if not zone_id:
        raise DecodeError("metadata: 'HostedZoneID' must not be empty")

    raw_changes = parsed.get("Changes", [])
    if not isinstance(raw_changes, list):
        raise DecodeError("metadata: 'Changes' must be a list")

    comment = parsed.get("Comment")
    if comment is not None and not isinstance(comment, str):
        raise DecodeError("metadata: 'Comment' must be a string")

    return MutationInstruction(
        hosted_zone_id=zone_id,
        changes=[_parse_record_change(c, i) for i, c in enumerate(raw_changes)],
        comment=comment,
    )


def parse_lifecycle_message(raw: str, logger: Logger) -> LifecycleMessage:
    """Parses the SNS message body into a LifecycleMessage."""
    parsed = _load_json(raw, "SNS message", logger)
    if not isinstance(parsed, dict):
        raise DecodeError("SNS message must be a JSON object")

    fields: Dict[str, str] = {}
    for attr, key in (
        ("event", "Event"),
        ("instance_id", "EC2InstanceId"),
        ("auto_scaling_group_name", "AutoScalingGroupName"),
        ("lifecycle_hook_name", "LifecycleHookName"),
        ("lifecycle_action_token", "LifecycleActionToken"),
        ("notification_metadata", "NotificationMetadata"),
        ("lifecycle_transition", "LifecycleTransition"),
    ):
        value = parsed.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise DecodeError(f"SNS message: '{key}' must be a string, got {value!r}")
        fields[attr] = value
    return LifecycleMessage(**fields)


def decode_notification(raw_event: RawEvent, logger: Logger) -> DecodedNotification:
    """
    Decodes a Lambda event into the lifecycle message and its change batch.

    The event may be the raw JSON payload or the mapping the Python Lambda
    runtime has already decoded it into. Test notifications are returned with
    an empty instruction and carry no metadata to parse.

    Args:
        raw_event: The Lambda event.
        logger: The Powertools Logger instance for structured logging.

    Returns:
        A DecodedNotification.

    Raises:
        DecodeError: If the event has no records or any layer is malformed.
    """
    if isinstance(raw_event, (bytes, str)):
        outer = _load_json(raw_event, "event", logger)
    else:
        logger.debug("Raw event data", extra={"layer": "event", "raw": raw_event})
        outer = raw_event

    if not isinstance(outer, Mapping):
        raise DecodeError("Lambda event must be a JSON object")

    records = outer.get("Records")
    if not isinstance(records, list) or not records:
        raise DecodeError("Parsed event contains no records")

    first: SNSEventRecord = records[0]
    try:
        sns_message = first["Sns"]["Message"]
    except (KeyError, TypeError) as e:
        raise DecodeError(f"Event record has no SNS message: {e!r}") from e
    if not isinstance(sns_message, str):
        raise DecodeError("SNS message must be a string")

    message = parse_lifecycle_message(sns_message, logger)

    if message.event == TEST_NOTIFICATION_EVENT:
        # Test notifications carry no metadata; stop here.
        return DecodedNotification(
            message=message,
            instruction=MutationInstruction(),
            is_test_notification=True,
        )

    instruction = parse_metadata(message.notification_metadata, logger)
    return DecodedNotification(message=message, instruction=instruction)
