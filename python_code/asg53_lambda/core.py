"""
Core business logic for the lifecycle hook DNS updater.

These functions contain no global state. They receive all dependencies,
including the boto3 clients and the Powertools logger, from the main handler
in app.py, allowing them to be unit-tested with stubbed or moto-backed clients.
"""

from functools import partial

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_autoscaling import AutoScalingClient
from mypy_boto3_ec2 import EC2Client
from mypy_boto3_route53 import Route53Client

from .errors import InstanceLookupError, InstanceNotFound, PostSubmissionError
from .model import (
    ABANDON,
    CONTINUE,
    InstanceAddresses,
    InvocationResult,
    LifecycleMessage,
    PropagationSettings,
)
from .notification import RawEvent, decode_notification
from .route53 import find_existing_record_values, propagate_change_batch
from .templates import ResolutionContext, resolve_change_batch

_NOT_FOUND_CODES = ("InvalidInstanceID.NotFound", "InvalidInstanceID.Malformed")


def resolve_instance_addresses(
    ec2_client: EC2Client, instance_id: str, logger: Logger
) -> InstanceAddresses:
    """
    Looks up the instance's current private and public IP addresses.

    On termination events the addresses may already have been released; a
    missing or empty address is returned as an empty string.

    Raises:
        InstanceNotFound: If EC2 has no such instance.
        InstanceLookupError: If the DescribeInstances call fails.
    """
    logger.info(f"Fetching EC2 instance data for ID: {instance_id}")
    try:
        response = ec2_client.describe_instances(InstanceIds=[instance_id])
    except ClientError as e:
        if e.response["Error"]["Code"] in _NOT_FOUND_CODES:
            raise InstanceNotFound(f"Cannot find instance ID {instance_id}") from e
        raise InstanceLookupError(f"Error fetching instance data: {e}") from e
    except BotoCoreError as e:
        raise InstanceLookupError(f"Error fetching instance data: {e}") from e

    reservations = response.get("Reservations", [])
    if not reservations or not reservations[0].get("Instances"):
        raise InstanceNotFound(f"Cannot find instance ID {instance_id}")

    instance = reservations[0]["Instances"][0]
    addresses = InstanceAddresses(
        instance_id=instance_id,
        private=instance.get("PrivateIpAddress") or "",
        public=instance.get("PublicIpAddress") or "",
    )
    logger.info(
        "Instance data returned.",
        extra={
            "instance_id": instance_id,
            "private_ip": addresses.private,
            "public_ip": addresses.public,
            "state": instance.get("State", {}).get("Name"),
        },
    )
    return addresses


def report_outcome(
    autoscaling_client: AutoScalingClient,
    message: LifecycleMessage,
    result: str,
    logger: Logger,
) -> bool:
    """
    Completes the lifecycle action with CONTINUE or ABANDON.

    A failure to deliver the result is logged and not raised: by the time this
    runs Route 53 may already have been changed, and a retried invocation
    would apply the batch again.

    Returns:
        True if Auto Scaling accepted the result.
    """
    logger.info(
        f"Sending result {result} for action token {message.lifecycle_action_token}"
    )
    try:
        autoscaling_client.complete_lifecycle_action(
            AutoScalingGroupName=message.auto_scaling_group_name,
            InstanceId=message.instance_id,
            LifecycleHookName=message.lifecycle_hook_name,
            LifecycleActionToken=message.lifecycle_action_token,
            LifecycleActionResult=result,
        )
    except (ClientError, BotoCoreError):
        logger.exception(
            "Error performing autoscaling action.",
            extra={"result": result, "instance_id": message.instance_id},
        )
        return False
    return True


def process_notification(
    raw_event: RawEvent,
    ec2_client: EC2Client,
    route53_client: Route53Client,
    autoscaling_client: AutoScalingClient,
    logger: Logger,
    settings: PropagationSettings,
) -> InvocationResult:
    """
    Handles one lifecycle hook notification end to end.

    1. Decodes the event. Test notifications stop here.
    2. Looks up the instance and renders the change batch.
    3. Submits the batch and waits for it to be INSYNC.
    4. Completes the lifecycle action with CONTINUE or ABANDON.

    Failures in steps 1 and 2 propagate: nothing has been changed yet, so the
    invocation can safely be retried. Failures in step 3 become ABANDON and
    the function returns normally.

    Metadata with no changes completes with CONTINUE without calling EC2 or
    Route 53, rather than sending an empty batch that Route 53 would reject
    and reporting ABANDON.

    Raises:
        PreSubmissionError: Any decode, lookup or template failure.
    """
    decoded = decode_notification(raw_event, logger)
    message = decoded.message
    instruction = decoded.instruction

    if decoded.is_test_notification:
        logger.info("This is a test notification - ignoring and exiting.")
        return InvocationResult()

    logger.append_keys(
        instance_id=message.instance_id,
        auto_scaling_group_name=message.auto_scaling_group_name,
        lifecycle_hook_name=message.lifecycle_hook_name,
    )
    logger.info(
        f"Event triggered for {message.auto_scaling_group_name}:"
        f"{message.instance_id}:{message.lifecycle_hook_name}",
        extra={"lifecycle_transition": message.lifecycle_transition},
    )

    if not instruction.changes:
        logger.warning("Notification metadata contains no changes; nothing to publish.")
        reported = report_outcome(autoscaling_client, message, CONTINUE, logger)
        return InvocationResult(outcome=CONTINUE, reported=reported)

    # --- Pre-submission: errors propagate and the event is retried ---
    addresses = resolve_instance_addresses(ec2_client, message.instance_id, logger)
    context = ResolutionContext.build(
        addresses,
        instruction,
        partial(find_existing_record_values, route53_client, logger=logger),
    )
    resolve_change_batch(instruction, context, logger)

    # --- Post-submission: errors are absorbed and reported as ABANDON ---
    change_id = None
    try:
        change_id = propagate_change_batch(route53_client, instruction, logger, settings)
    except PostSubmissionError as e:
        change_id = e.change_id or None
        logger.error(
            "Error sending change batch to Route 53.",
            extra={"error_type": type(e).__name__, "error": str(e), "change_id": change_id},
        )
        outcome = ABANDON
    else:
        logger.info("Completed Route 53 action, sending continue event")
        outcome = CONTINUE

    reported = report_outcome(autoscaling_client, message, outcome, logger)
    return InvocationResult(outcome=outcome, change_id=change_id, reported=reported)
