"""
Data models for the Auto Scaling lifecycle hook DNS updater.

This module defines the core data structures passed between the decoder, the
template engine, the Route 53 driver and the lifecycle reporter. TypedDicts
describe the wire envelope delivered by Lambda; dataclasses describe the
decoded message and the change batch being rendered.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TypedDict, cast

from mypy_boto3_route53.type_defs import ChangeTypeDef

# Sent once by Auto Scaling when a hook's notification target is configured.
TEST_NOTIFICATION_EVENT = "autoscaling:TEST_NOTIFICATION"

# Lifecycle action results.
CONTINUE = "CONTINUE"
ABANDON = "ABANDON"

# Route 53 change states, plus the driver's own terminal failure state.
PENDING = "PENDING"
INSYNC = "INSYNC"
TIMED_OUT = "TIMED_OUT"

VALID_ACTIONS = ("CREATE", "UPSERT", "DELETE")


class SNSPayload(TypedDict):
    """The abridged SNS structure inside a Lambda event record."""

    Message: str
    # Other SNS attributes are available but are not used by this application.


class SNSEventRecord(TypedDict):
    """A single record of an SNS-triggered Lambda event."""

    Sns: SNSPayload


@dataclass(frozen=True)
class LifecycleMessage:
    """
    The lifecycle hook notification carried in the SNS message.

    Attributes:
        event: The event kind. Test notifications read
               "autoscaling:TEST_NOTIFICATION" and leave most other fields empty.
        instance_id: The EC2 instance the lifecycle action applies to.
        auto_scaling_group_name: The group the hook belongs to.
        lifecycle_hook_name: The name of the hook that fired.
        lifecycle_action_token: The token identifying this lifecycle action.
        notification_metadata: The operator-supplied metadata string, itself JSON.
        lifecycle_transition: The transition being paused, e.g.
                              "autoscaling:EC2_INSTANCE_LAUNCHING".
    """

    event: str = ""
    instance_id: str = ""
    auto_scaling_group_name: str = ""
    lifecycle_hook_name: str = ""
    lifecycle_action_token: str = ""
    notification_metadata: str = ""
    lifecycle_transition: str = ""


@dataclass
class RecordChange:
    """
    One change in the batch. ``name`` and every entry of ``values`` start out as
    templates and are overwritten with their rendered literals in place.

    Attributes:
        action: CREATE, UPSERT or DELETE.
        name: The record set name.
        type: The record type (A, CNAME, ...).
        ttl: The record TTL. Alias record sets carry none.
        values: The resource record values, in order.
        extra: Any other ResourceRecordSet keys (SetIdentifier, Weight,
               AliasTarget, ...), sent to Route 53 as given.
    """

    action: str
    name: str
    type: str
    ttl: Optional[int] = None
    values: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_change(self) -> ChangeTypeDef:
        """Returns the change in the shape ChangeResourceRecordSets expects."""
        record_set: Dict[str, Any] = dict(self.extra)
        record_set["Name"] = self.name
        record_set["Type"] = self.type
        if self.ttl is not None:
            record_set["TTL"] = self.ttl
        if self.values:
            record_set["ResourceRecords"] = [{"Value": v} for v in self.values]
        return cast(ChangeTypeDef, {"Action": self.action, "ResourceRecordSet": record_set})


@dataclass
class MutationInstruction:
    """The hosted zone to operate on and the ordered change batch for it."""

    hosted_zone_id: str = ""
    changes: List[RecordChange] = field(default_factory=list)
    comment: Optional[str] = None


@dataclass
class DecodedNotification:
    """
    The result of decoding one Lambda event.

    Attributes:
        message: The lifecycle message.
        instruction: The change batch. Empty for test notifications.
        is_test_notification: True when nothing past decoding may run.
    """

    message: LifecycleMessage
    instruction: MutationInstruction
    is_test_notification: bool = False


@dataclass(frozen=True)
class InstanceAddresses:
    """The instance's current addresses; empty strings once released."""

    instance_id: str
    private: str = ""
    public: str = ""


@dataclass(frozen=True)
class PropagationSettings:
    """Polling parameters for confirming a change has reached INSYNC."""

    delay_seconds: float = 5
    max_attempts: int = 24
    heartbeat_interval_seconds: float = 5


@dataclass
class InvocationResult:
    """
    What a single invocation did.

    Attributes:
        outcome: CONTINUE, ABANDON, or None when no signal was due.
        change_id: The Route 53 change ID, if a batch was accepted.
        reported: Whether the outcome was delivered to Auto Scaling.
    """

    outcome: Optional[str] = None
    change_id: Optional[str] = None
    reported: bool = False
