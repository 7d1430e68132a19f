"""
A factory module for creating and providing boto3 clients.

This module is the core of the Dependency Injection (DI) pattern for the
application. The handler receives the clients from here and passes them to
every function that talks to AWS, so tests can hand in stubbed or moto-backed
clients instead without making real AWS calls.
"""

import logging
import os
from typing import Tuple

import boto3
import botocore.config

from mypy_boto3_autoscaling import AutoScalingClient
from mypy_boto3_ec2 import EC2Client
from mypy_boto3_route53 import Route53Client

logger = logging.getLogger(__name__)

# A shared retry configuration so throttling and transient network errors are
# absorbed by botocore before they reach the application's own error handling.
BOTO_CONFIG_RETRYABLE = botocore.config.Config(
    retries={"max_attempts": 5, "mode": "standard"}
)


def get_boto_clients() -> Tuple[EC2Client, Route53Client, AutoScalingClient]:
    """
    Returns a tuple of the AWS service clients the handler needs.

    If the `USE_MOTO` flag is present in the environment it is assumed that
    `moto` is active and will intercept the `boto3` calls. Otherwise real
    clients are created.

    The AWS region is explicitly read from the environment to ensure consistent
    and predictable behavior across all clients.

    Returns:
        A tuple containing initialized boto3 clients in the following order:
        (ec2_client, route53_client, autoscaling_client)
    """
    aws_region = os.environ.get("AWS_REGION")
    if not aws_region:
        # This should ideally not happen in a real Lambda environment.
        logger.warning("AWS_REGION not set, boto3 will attempt to resolve it.")

    if os.environ.get("USE_MOTO"):
        logger.info("MOTO ENABLED: Returning mocked AWS clients.")

    ec2_client: EC2Client = boto3.client(
        "ec2", region_name=aws_region, config=BOTO_CONFIG_RETRYABLE
    )
    route53_client: Route53Client = boto3.client(
        "route53", region_name=aws_region, config=BOTO_CONFIG_RETRYABLE
    )
    autoscaling_client: AutoScalingClient = boto3.client(
        "autoscaling", region_name=aws_region, config=BOTO_CONFIG_RETRYABLE
    )

    return ec2_client, route53_client, autoscaling_client
