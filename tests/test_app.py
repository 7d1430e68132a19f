"""
Tests for the Lambda entry point: response shape, and which failures are
raised to Lambda for a retry and which are absorbed.
"""

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from asg53_lambda import app
from asg53_lambda.errors import DecodeError, InstanceNotFound
from asg53_lambda.model import ABANDON, CONTINUE

from conftest import (
    FAST_PROPAGATION,
    LIFECYCLE_ACTION_TOKEN,
    TEST_METADATA,
    change_info,
    instance_response,
    make_event,
    make_message,
    make_test_notification_event,
)


@pytest.fixture
def wired(monkeypatch, ec2_stub, route53_stub, autoscaling_stub):
    """Point the handler's module-level clients at stubbed ones."""
    monkeypatch.setattr(app, "EC2", ec2_stub[0])
    monkeypatch.setattr(app, "ROUTE53", route53_stub[0])
    monkeypatch.setattr(app, "AUTOSCALING", autoscaling_stub[0])
    monkeypatch.setattr(app, "PROPAGATION", FAST_PROPAGATION)
    return ec2_stub[1], route53_stub[1], autoscaling_stub[1]


class TestGetEnvVar:

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("ASG53_UNSET_VAR", raising=False)
        assert app.get_env_var("ASG53_UNSET_VAR", "fallback") == "fallback"

    def test_required_var_missing_raises(self, monkeypatch):
        monkeypatch.delenv("ASG53_UNSET_VAR", raising=False)
        with pytest.raises(ValueError, match="ASG53_UNSET_VAR"):
            app.get_env_var("ASG53_UNSET_VAR")

    def test_defaults_match_polling_protocol(self):
        assert app.PROPAGATION.delay_seconds == 5
        assert app.PROPAGATION.max_attempts == 24


class TestHandler:

    def test_test_notification(self, wired, lambda_context):
        response = app.handler(make_test_notification_event(), lambda_context)
        assert response["statusCode"] == 200
        assert json.loads(response["body"]) == {"message": "Test notification ignored."}

    def test_continue(self, wired, lambda_context):
        ec2, route53, autoscaling = wired
        ec2.add_response("describe_instances", instance_response())
        route53.add_response("change_resource_record_sets", change_info("PENDING"))
        route53.add_response("get_change", change_info("INSYNC"))
        autoscaling.add_response("complete_lifecycle_action", {})

        response = app.handler(make_event(), lambda_context)

        body = json.loads(response["body"])
        assert response["statusCode"] == 200
        assert body["outcome"] == CONTINUE
        assert body["reported"] is True
        assert body["change_id"] == "/change/C2682N5HXP0BZ4"

    def test_submit_error_returns_cleanly_with_abandon(self, wired, lambda_context):
        ec2, route53, autoscaling = wired
        ec2.add_response("describe_instances", instance_response())
        route53.add_client_error(
            "change_resource_record_sets", service_error_code="NoSuchHostedZone", http_status_code=404
        )
        autoscaling.add_response(
            "complete_lifecycle_action",
            {},
            {
                "AutoScalingGroupName": "ASGName",
                "InstanceId": "i-123456789",
                "LifecycleHookName": "Lifecycle",
                "LifecycleActionToken": LIFECYCLE_ACTION_TOKEN,
                "LifecycleActionResult": ABANDON,
            },
        )
        event = make_event(make_message(dict(TEST_METADATA, HostedZoneID="bad")))

        response = app.handler(event, lambda_context)

        assert json.loads(response["body"])["outcome"] == ABANDON
        autoscaling.assert_no_pending_responses()

    def test_instance_not_found_is_raised(self, wired, lambda_context):
        ec2, _, _ = wired
        ec2.add_client_error("describe_instances", service_error_code="InvalidInstanceID.NotFound")
        with pytest.raises(InstanceNotFound):
            app.handler(make_event(make_message(instance_id="bad")), lambda_context)

    def test_decode_error_is_raised(self, wired, lambda_context):
        with pytest.raises(DecodeError):
            app.handler({"Records": []}, lambda_context)

    def test_undelivered_outcome_still_returns(self, wired, lambda_context, monkeypatch):
        ec2, route53, _ = wired
        autoscaling = MagicMock()
        autoscaling.complete_lifecycle_action.side_effect = ClientError(
            {"Error": {"Code": "ValidationError", "Message": "No active Lifecycle Action"}},
            "CompleteLifecycleAction",
        )
        monkeypatch.setattr(app, "AUTOSCALING", autoscaling)
        ec2.add_response("describe_instances", instance_response())
        route53.add_response("change_resource_record_sets", change_info("INSYNC"))
        route53.add_response("get_change", change_info("INSYNC"))

        response = app.handler(make_event(), lambda_context)

        body = json.loads(response["body"])
        assert body["outcome"] == CONTINUE
        assert body["reported"] is False
