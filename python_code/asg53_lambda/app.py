"""
Main AWS Lambda handler for the Auto Scaling lifecycle hook DNS updater.

This module serves as the primary entry point and orchestrator for the function.
Its responsibilities include:
  - Loading and validating configuration from environment variables.
  - Initializing the boto3 clients, logger and metrics once per cold start.
  - Receiving lifecycle hook notifications from the SNS trigger.
  - Calling the testable business logic in the 'core' module.
  - Managing the overall success/failure state and emitting the final metrics.
"""

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aws_lambda_powertools import Logger, Metrics
from aws_lambda_powertools.metrics import MetricUnit

from . import clients, core
from .model import ABANDON, CONTINUE, PropagationSettings

# --- 1. SETUP: Configuration, Validation, and Clients ---


def get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Gets an environment variable or raises a ValueError for fast-failure.

    Args:
        name: The name of the environment variable.
        default: An optional default value. If not provided, the variable is required.

    Returns:
        The value of the environment variable.

    Raises:
        ValueError: If the required environment variable is not set.
    """
    value = os.environ.get(name, default)
    if value is None:
        raise ValueError(f"FATAL: Environment variable '{name}' is not set.")
    return value


# --- Configuration (loaded once at cold start) ---
ENVIRONMENT = get_env_var("ENVIRONMENT", "dev")
LOG_LEVEL = get_env_var("LOG_LEVEL", "INFO").upper()
LOG_EVENT = get_env_var("LOG_EVENT", "false").lower() == "true"
SERVICE_NAME = get_env_var("POWERTOOLS_SERVICE_NAME", "asg53")
METRICS_NAMESPACE = get_env_var("METRICS_NAMESPACE", "Asg53")
# Route 53 usually reports INSYNC within a minute; 24 polls at 5s gives two.
PROPAGATION = PropagationSettings(
    delay_seconds=float(get_env_var("CHANGE_POLL_DELAY_SECONDS", "5")),
    max_attempts=int(get_env_var("CHANGE_POLL_MAX_ATTEMPTS", "24")),
    heartbeat_interval_seconds=float(get_env_var("HEARTBEAT_INTERVAL_SECONDS", "5")),
)

# --- Global Setup ---
logger = Logger(service=SERVICE_NAME, level=LOG_LEVEL)
metrics = Metrics(namespace=METRICS_NAMESPACE, service=SERVICE_NAME)
metrics.set_default_dimensions(environment=ENVIRONMENT)

EC2, ROUTE53, AUTOSCALING = clients.get_boto_clients()

_OUTCOME_METRICS = {CONTINUE: "LifecycleContinue", ABANDON: "LifecycleAbandon"}


def _build_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    """Centralized helper to build the final Lambda response."""
    return {"statusCode": status_code, "body": json.dumps(body)}


def _latency_ms(start_time: datetime) -> int:
    return int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)


# --- 2. LAMBDA HANDLER ---


@metrics.log_metrics
@logger.inject_lambda_context(log_event=LOG_EVENT, clear_state=True)
def handler(event: Dict, context: Any):
    """
    Main Lambda entry point for one lifecycle hook notification.

    Returns a dictionary for logging and unit testing convenience; SNS ignores
    it. Raising tells Lambda to retry the event, so the handler only raises for
    failures that happen before a change batch is sent to Route 53 (decoding,
    instance lookup, template rendering). Once a batch has been sent the
    outcome is reported to Auto Scaling and the handler returns normally.
    """
    start_time = datetime.now(timezone.utc)
    logger.info("asg53 starting.")

    try:
        result = core.process_notification(
            event, EC2, ROUTE53, AUTOSCALING, logger, PROPAGATION
        )
    except Exception as e:
        error_payload = {
            "error_type": type(e).__name__,
            "error_message": str(e),
            "latency_ms": _latency_ms(start_time),
        }
        metrics.add_metric(name="InvocationFailures", unit=MetricUnit.Count, value=1)
        logger.error(f"Processing failed: {json.dumps(error_payload)}", exc_info=True)
        raise

    latency_ms = _latency_ms(start_time)
    metrics.add_metric(name="LatencyMs", unit=MetricUnit.Milliseconds, value=latency_ms)

    if result.outcome is None:
        metrics.add_metric(name="TestNotificationsIgnored", unit=MetricUnit.Count, value=1)
        return _build_response(200, {"message": "Test notification ignored."})

    metrics.add_metric(name=_OUTCOME_METRICS[result.outcome], unit=MetricUnit.Count, value=1)
    if not result.reported:
        metrics.add_metric(name="OutcomeDeliveryFailures", unit=MetricUnit.Count, value=1)

    log_payload = {
        "outcome": result.outcome,
        "change_id": result.change_id,
        "reported": result.reported,
        "latency_ms": latency_ms,
    }
    logger.info(f"Lifecycle action finished: {result.outcome}", extra=log_payload)
    return _build_response(200, log_payload)
