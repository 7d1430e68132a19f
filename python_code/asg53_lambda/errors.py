"""
Exception taxonomy for the lifecycle hook DNS updater.

Errors are split by whether Route 53 may already have been changed. A
PreSubmissionError means nothing external has happened yet, so it propagates
out of the handler and the invocation is retried. A PostSubmissionError means
a change batch was sent; it is converted into an ABANDON result and the
invocation completes cleanly so a retry cannot apply the batch twice.
"""


class Asg53Error(Exception):
    """Base class for all errors raised by this application."""


class PreSubmissionError(Asg53Error):
    """Raised before any change batch has been sent to Route 53."""


class PostSubmissionError(Asg53Error):
    """Raised once a change batch has been sent to Route 53."""

    def __init__(self, message: str, change_id: str = ""):
        super().__init__(message)
        self.change_id = change_id


class DecodeError(PreSubmissionError):
    """The Lambda event, SNS message or notification metadata is malformed."""


class InstanceNotFound(PreSubmissionError):
    """EC2 returned no instance for the requested ID."""


class InstanceLookupError(PreSubmissionError):
    """The EC2 DescribeInstances call failed."""


class RecordNotFound(PreSubmissionError):
    """No published record set matches the requested name and type."""


class QueryError(PreSubmissionError):
    """The Route 53 ListResourceRecordSets call failed."""


class TemplateSyntaxError(PreSubmissionError):
    """A name or value template is not well-formed."""


class TemplateEvalError(PreSubmissionError):
    """A well-formed template could not be evaluated."""


class SubmitError(PostSubmissionError):
    """Route 53 rejected the change batch."""


class PropagationTimeout(PostSubmissionError):
    """The change batch did not reach INSYNC within the polling budget."""


class ChangeStatusError(PostSubmissionError):
    """Confirming an accepted change batch failed unexpectedly."""
