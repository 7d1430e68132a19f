"""
Route 53 operations: existing-record lookups, change batch submission, and
confirmation that a submitted change has propagated.

GetChange is polled on a short fixed interval rather than with the SDK's
ResourceRecordSetsChanged waiter, whose 30 second delay is too coarse for a
lifecycle hook that holds an instance in a wait state.
"""

import re
import threading
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_route53 import Route53Client

from .errors import (
    ChangeStatusError,
    PostSubmissionError,
    PropagationTimeout,
    QueryError,
    RecordNotFound,
    SubmitError,
)
from .model import INSYNC, PENDING, TIMED_OUT, MutationInstruction, PropagationSettings


# Route 53 lists names with special characters as octal escapes, e.g. \052 for *
_OCTAL_ESCAPE_RE = re.compile(r"\\([0-7]{3})")


def _dns_name(name: str) -> str:
    name = _OCTAL_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 8)), name)
    return name.lower().rstrip(".") + "."


def find_existing_record_values(
    route53_client: Route53Client, zone_id: str, name: str, rr_type: str, logger: Logger
) -> List[str]:
    """
    Returns the values currently published for a record set.

    Route 53 lists record sets starting at the requested name and type, so the
    single set returned is only a match if its name and type are exactly the
    ones requested.

    Args:
        route53_client: The boto3 Route 53 client.
        zone_id: The hosted zone to search.
        name: The fully rendered record set name.
        rr_type: The record type.
        logger: The Powertools Logger instance for structured logging.

    Returns:
        The record set's values, in published order. Alias record sets have none.

    Raises:
        RecordNotFound: If no record set with this name and type exists.
        QueryError: If the Route 53 call fails.
    """
    logger.info(
        f"Looking for resource record set {name} {rr_type} in zone ID: {zone_id}"
    )
    try:
        response = route53_client.list_resource_record_sets(
            HostedZoneId=zone_id,
            StartRecordName=name,
            StartRecordType=rr_type,  # type: ignore[arg-type]
            MaxItems="1",
        )
    except (ClientError, BotoCoreError) as e:
        logger.error("Error locating resource record.", extra={"error": str(e)})
        raise QueryError(f"Error locating resource record: {e}") from e

    record_sets = response.get("ResourceRecordSets", [])
    if not record_sets:
        raise RecordNotFound(f"Resource record set {name} {rr_type} not found")

    found = record_sets[0]
    if _dns_name(found["Name"]) != _dns_name(name) or found["Type"] != rr_type:
        raise RecordNotFound(f"Resource record set {name} {rr_type} not found")

    return [r["Value"] for r in found.get("ResourceRecords", [])]


def submit_change_batch(
    route53_client: Route53Client, instruction: MutationInstruction, logger: Logger
) -> str:
    """
    Sends the rendered change batch to Route 53 as a single request.

    Returns:
        The change ID to poll.

    Raises:
        SubmitError: If Route 53 rejects the batch or the request fails.
    """
    zone_id = instruction.hosted_zone_id
    logger.info(
        f"Sending Route53 change sets to zone ID: {zone_id}",
        extra={"change_count": len(instruction.changes)},
    )
    change_batch = {"Changes": [c.to_change() for c in instruction.changes]}
    if instruction.comment:
        change_batch["Comment"] = instruction.comment  # type: ignore[assignment]

    try:
        response = route53_client.change_resource_record_sets(
            HostedZoneId=zone_id, ChangeBatch=change_batch  # type: ignore[arg-type]
        )
    except (ClientError, BotoCoreError) as e:
        logger.error("Error sending change batch.", extra={"error": str(e)})
        raise SubmitError(f"Error sending change batch: {e}") from e

    change_id = response["ChangeInfo"]["Id"]
    logger.info(
        "Change batch accepted.",
        extra={"change_id": change_id, "status": response["ChangeInfo"]["Status"]},
    )
    return change_id


@contextmanager
def _heartbeat(change_id: str, interval: float, logger: Logger) -> Iterator[None]:
    """Logs progress every `interval` seconds until the block exits."""
    stop = threading.Event()
    start = time.monotonic()

    def _beat() -> None:
        while not stop.wait(interval):
            elapsed = time.monotonic() - start
            logger.info(
                f"Still waiting for change ID {change_id}, elapsed time {elapsed:.1f}s",
                extra={"change_id": change_id, "elapsed_seconds": round(elapsed, 1)},
            )

    thread = threading.Thread(
        target=_beat, name=f"route53-heartbeat-{change_id}", daemon=True
    )
    thread.start()
    try:
        yield
    finally:
        stop.set()
        thread.join()


def wait_for_change_insync(
    route53_client: Route53Client,
    change_id: str,
    logger: Logger,
    settings: PropagationSettings,
) -> int:
    """
    Polls GetChange until the change is INSYNC or the attempt budget runs out.

    The change starts PENDING. Each poll either observes INSYNC, which ends the
    wait, or leaves it PENDING. A failed poll is treated as transient: it is
    logged and uses up one attempt. After `settings.max_attempts` polls without
    INSYNC the change is TIMED_OUT.

    Args:
        route53_client: The boto3 Route 53 client.
        change_id: The ID returned by ChangeResourceRecordSets.
        logger: The Powertools Logger instance for structured logging.
        settings: The poll delay, attempt budget and heartbeat interval.

    Returns:
        The number of polls it took to observe INSYNC.

    Raises:
        PropagationTimeout: If the change is not INSYNC after the last attempt.
    """
    logger.info(f"Waiting for change ID {change_id} to sync")
    state = PENDING
    last_error: Optional[Exception] = None

    with _heartbeat(change_id, settings.heartbeat_interval_seconds, logger):
        for attempt in range(1, settings.max_attempts + 1):
            try:
                response = route53_client.get_change(Id=change_id)
                status = response["ChangeInfo"]["Status"]
                if status == INSYNC:
                    state = INSYNC
                    logger.info(
                        f"Change ID {change_id} is {state}",
                        extra={"change_id": change_id, "attempt": attempt},
                    )
                    return attempt
                logger.debug(
                    f"Change ID {change_id} is {status}",
                    extra={"change_id": change_id, "attempt": attempt},
                )
            except (ClientError, BotoCoreError) as e:
                last_error = e
                logger.warning(
                    "Transient error polling change status.",
                    extra={"change_id": change_id, "attempt": attempt, "error": str(e)},
                )

            if attempt < settings.max_attempts:
                time.sleep(settings.delay_seconds)

    state = TIMED_OUT
    logger.error(
        f"Change ID {change_id} is {state}",
        extra={"change_id": change_id, "attempts": settings.max_attempts},
    )
    raise PropagationTimeout(
        f"Change ID {change_id} not {INSYNC} after {settings.max_attempts} attempts",
        change_id=change_id,
    ) from last_error


def propagate_change_batch(
    route53_client: Route53Client,
    instruction: MutationInstruction,
    logger: Logger,
    settings: PropagationSettings,
) -> str:
    """
    Submits the batch and waits for it to be INSYNC.

    Once the batch is accepted every failure is raised as a
    PostSubmissionError carrying the change ID.

    Returns:
        The change ID.

    Raises:
        SubmitError: If the batch is rejected.
        PropagationTimeout: If the batch does not propagate in time.
        ChangeStatusError: If confirming the accepted batch fails in any other way.
    """
    change_id = submit_change_batch(route53_client, instruction, logger)
    try:
        wait_for_change_insync(route53_client, change_id, logger, settings)
    except PostSubmissionError:
        raise
    except Exception as e:
        logger.exception(
            "Unexpected error waiting for change to sync.", extra={"change_id": change_id}
        )
        raise ChangeStatusError(
            f"Error confirming change ID {change_id}: {e}", change_id=change_id
        ) from e
    return change_id
