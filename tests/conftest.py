"""
Shared fixtures for the asg53 test suite.

Fake credentials and a region are set before anything creates a boto3 client,
so no test can reach real AWS. Stubbed clients are plain boto3 clients wrapped
in botocore's Stubber; moto-backed clients are created inside `mock_aws`.
"""

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone

import boto3
import pytest
from aws_lambda_powertools import Logger
from botocore.stub import Stubber

os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_REGION", "us-east-1")

from asg53_lambda.model import PropagationSettings  # noqa: E402

INSTANCE_ID = "i-123456789"
ZONE_ID = "ABCDEF0123456789"
LIFECYCLE_ACTION_TOKEN = "c613620e-07e2-4ed2-a9e2-ef8258911ade"
SUBMITTED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)

# Polls back to back; the heartbeat still ticks so its thread is exercised.
FAST_PROPAGATION = PropagationSettings(
    delay_seconds=0, max_attempts=24, heartbeat_interval_seconds=0.01
)

TEST_METADATA = {
    "HostedZoneID": ZONE_ID,
    "Changes": [
        {
            "Action": "UPSERT",
            "ResourceRecordSet": {
                "Name": "{{InstanceID}}.example.com.",
                "TTL": 3600,
                "Type": "A",
                "ResourceRecords": [{"Value": "{{InstancePublicIPAddress}}"}],
            },
        },
        {
            "Action": "UPSERT",
            "ResourceRecordSet": {
                "Name": "www.example.com.",
                "TTL": 3600,
                "Type": "CNAME",
                "ResourceRecords": [{"Value": "{{InstanceID}}.example.com."}],
            },
        },
    ],
}


def make_message(metadata=None, instance_id=INSTANCE_ID, event=None):
    """Build the inner lifecycle message as a dict."""
    message = {
        "EC2InstanceId": instance_id,
        "AutoScalingGroupName": "ASGName",
        "LifecycleHookName": "Lifecycle",
        "LifecycleActionToken": LIFECYCLE_ACTION_TOKEN,
        "LifecycleTransition": "autoscaling:EC2_INSTANCE_LAUNCHING",
        "NotificationMetadata": json.dumps(TEST_METADATA if metadata is None else metadata),
    }
    if event is not None:
        message["Event"] = event
    return message


def make_event(message=None):
    """Wrap a lifecycle message in the SNS-in-Lambda envelope."""
    if message is None:
        message = make_message()
    return {"Records": [{"Sns": {"Message": json.dumps(message)}}]}


def make_test_notification_event():
    return make_event(
        {
            "Event": "autoscaling:TEST_NOTIFICATION",
            "AutoScalingGroupName": "ASGName",
            "Service": "AWS Auto Scaling",
        }
    )


def instance_response(instance_id=INSTANCE_ID, private="10.0.0.1", public="54.0.0.1"):
    instance = {"InstanceId": instance_id, "State": {"Code": 16, "Name": "running"}}
    if private is not None:
        instance["PrivateIpAddress"] = private
    if public is not None:
        instance["PublicIpAddress"] = public
    return {"Reservations": [{"Instances": [instance]}]}


def change_info(status, change_id="/change/C2682N5HXP0BZ4"):
    return {"ChangeInfo": {"Id": change_id, "Status": status, "SubmittedAt": SUBMITTED_AT}}


def record_sets_response(name, rr_type, values):
    return {
        "ResourceRecordSets": [
            {
                "Name": name,
                "Type": rr_type,
                "TTL": 300,
                "ResourceRecords": [{"Value": v} for v in values],
            }
        ],
        "IsTruncated": False,
        "MaxItems": "1",
    }


@dataclass
class LambdaContext:
    function_name: str = "asg53"
    memory_limit_in_mb: int = 128
    invoked_function_arn: str = "arn:aws:lambda:us-east-1:123456789012:function:asg53"
    aws_request_id: str = "52fdfc07-2182-154f-163f-5f0f9a621d72"


@pytest.fixture
def logger():
    return Logger(service="asg53-test", level="DEBUG")


@pytest.fixture
def lambda_context():
    return LambdaContext()


@pytest.fixture
def ec2_stub():
    client = boto3.client("ec2", region_name="us-east-1")
    with Stubber(client) as stubber:
        yield client, stubber


@pytest.fixture
def route53_stub():
    client = boto3.client("route53", region_name="us-east-1")
    with Stubber(client) as stubber:
        yield client, stubber


@pytest.fixture
def autoscaling_stub():
    client = boto3.client("autoscaling", region_name="us-east-1")
    with Stubber(client) as stubber:
        yield client, stubber
