"""
Rendering of the change batch's name and value templates.

Templates use a small, fixed set of actions enclosed in double braces:

    {{InstanceID}}                        the instance ID
    {{InstancePrivateIPAddress}}          the private IP address, or ""
    {{InstancePublicIPAddress}}           the public IP address, or ""
    {{ExistingRDataValue <set> <value>}}  a value currently published in
                                          Route 53 for record set <set> of
                                          this batch

A leading dot on the identifier ({{.InstanceID}}) is accepted.

ExistingRDataValue reads Route 53, not the batch, using the *rendered* name
and type of the referenced record set. Record sets are rendered strictly in
index order, name first, so a lookup may only reference a set whose name has
already been rendered: an earlier set, or the current set from within one of
its values. Anything else is rejected rather than queried with an unrendered
name.

On termination events the address actions render as empty strings. DELETE
changes should use ExistingRDataValue to name the values being removed.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Tuple, Union

from aws_lambda_powertools import Logger

from .errors import TemplateEvalError, TemplateSyntaxError
from .model import InstanceAddresses, MutationInstruction, RecordChange

# (zone_id, name, rr_type) -> published values
RecordLookup = Callable[[str, str, str], List[str]]

_ACTION_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_INT_RE = re.compile(r"^-?\d+$")

_FIELDS = ("InstanceID", "InstancePrivateIPAddress", "InstancePublicIPAddress")
_LOOKUP = "ExistingRDataValue"


@dataclass(frozen=True)
class FieldAction:
    name: str


@dataclass(frozen=True)
class LookupAction:
    rr_set_index: int
    value_index: int


Segment = Union[str, FieldAction, LookupAction]


@dataclass
class ResolutionContext:
    """
    Everything a template can reference during one invocation.

    Attributes:
        instance_id: The instance ID.
        private_ip: The private IP address, or "".
        public_ip: The public IP address, or "".
        hosted_zone_id: The zone ExistingRDataValue lookups are made in.
        batch: The same list of changes being rendered.
        record_lookup: Returns the published values for (zone, name, type).
        names_rendered: How many leading entries of `batch` have a rendered name.
    """

    instance_id: str
    private_ip: str
    public_ip: str
    hosted_zone_id: str
    batch: List[RecordChange]
    record_lookup: RecordLookup
    names_rendered: int = field(default=0)

    @classmethod
    def build(
        cls,
        addresses: InstanceAddresses,
        instruction: MutationInstruction,
        record_lookup: RecordLookup,
    ) -> "ResolutionContext":
        return cls(
            instance_id=addresses.instance_id,
            private_ip=addresses.private,
            public_ip=addresses.public,
            hosted_zone_id=instruction.hosted_zone_id,
            batch=instruction.changes,
            record_lookup=record_lookup,
        )

    def field_value(self, name: str) -> str:
        if name == "InstanceID":
            return self.instance_id
        if name == "InstancePrivateIPAddress":
            return self.private_ip
        return self.public_ip

    def existing_rdata_value(self, rr_set_index: int, value_index: int) -> str:
        """
        Returns value `value_index` currently published in Route 53 for
        record set `rr_set_index` of the batch.

        Raises:
            TemplateEvalError: If either index is out of range, or the record
                               set's name has not been rendered yet.
            RecordNotFound: If no matching record set is published.
            QueryError: If the Route 53 lookup fails.
        """
        if rr_set_index < 0 or rr_set_index >= len(self.batch):
            raise TemplateEvalError(
                f"Requested rrSet index of {rr_set_index} out of range"
            )
        if rr_set_index >= self.names_rendered:
            raise TemplateEvalError(
                f"Requested rrSet index of {rr_set_index} has not had its name rendered yet"
            )

        rr_set = self.batch[rr_set_index]
        values = self.record_lookup(self.hosted_zone_id, rr_set.name, rr_set.type)
        if value_index < 0 or value_index >= len(values):
            raise TemplateEvalError(
                f"Requested rDataIndex index of {value_index} out of range"
            )
        return values[value_index]


def _parse_action(body: str, label: str) -> Union[FieldAction, LookupAction]:
    words = body.split()
    if not words:
        raise TemplateSyntaxError(f"{label}: empty action")

    ident = words[0][1:] if words[0].startswith(".") else words[0]
    args = words[1:]

    if ident in _FIELDS:
        if args:
            raise TemplateSyntaxError(f"{label}: {ident} takes no arguments")
        return FieldAction(ident)

    if ident == _LOOKUP:
        if len(args) != 2:
            raise TemplateSyntaxError(
                f"{label}: {_LOOKUP} takes 2 arguments, got {len(args)}"
            )
        for arg in args:
            if not _INT_RE.match(arg):
                raise TemplateSyntaxError(
                    f"{label}: {_LOOKUP} argument {arg!r} is not an integer"
                )
        return LookupAction(int(args[0]), int(args[1]))

    raise TemplateSyntaxError(f"{label}: unknown action {words[0]!r}")


def parse_template(text: str, label: str = "template") -> Tuple[Segment, ...]:
    """
    Splits a template into literal text and actions.

    Raises:
        TemplateSyntaxError: If an action is unclosed, empty or unknown, or has
                             the wrong arguments.
    """
    segments: List[Segment] = []
    pos = 0
    for match in _ACTION_RE.finditer(text):
        if match.start() > pos:
            segments.append(text[pos : match.start()])
        segments.append(_parse_action(match.group(1), label))
        pos = match.end()

    tail = text[pos:]
    if "{{" in tail:
        raise TemplateSyntaxError(f"{label}: unclosed action")
    if tail:
        segments.append(tail)
    return tuple(segments)


def render_segments(segments: Sequence[Segment], context: ResolutionContext) -> str:
    out: List[str] = []
    for seg in segments:
        if isinstance(seg, str):
            out.append(seg)
        elif isinstance(seg, FieldAction):
            out.append(context.field_value(seg.name))
        else:
            out.append(context.existing_rdata_value(seg.rr_set_index, seg.value_index))
    return "".join(out)


def render_template(text: str, context: ResolutionContext, label: str = "template") -> str:
    """Parses then renders a single template against the context."""
    return render_segments(parse_template(text, label), context)


def resolve_change_batch(
    instruction: MutationInstruction, context: ResolutionContext, logger: Logger
) -> MutationInstruction:
    """
    Renders every name and value template of the batch in place.

    Record sets are visited in index order. Each name is rendered and stored
    before that set's values, so values (and later sets) can look up the set by
    its rendered name. A failure anywhere aborts the whole batch.

    Args:
        instruction: The instruction whose changes are rewritten.
        context: The resolution context, built over `instruction.changes`.
        logger: The Powertools Logger instance for structured logging.

    Returns:
        The same instruction, now holding only literal values.

    Raises:
        TemplateSyntaxError, TemplateEvalError, RecordNotFound, QueryError.
    """
    if context.batch is not instruction.changes:
        raise ValueError("ResolutionContext must be built over the instruction's changes")

    logger.info("Writing template values for change batch")
    for n, rr_set in enumerate(instruction.changes):
        rr_set.name = render_template(rr_set.name, context, f"RR Set #{n} .Name")
        context.names_rendered = n + 1

        for x, value in enumerate(rr_set.values):
            rr_set.values[x] = render_template(
                value, context, f"RR Set #{n} .Records.Value #{x}"
            )

        logger.info(
            f"Record written: {rr_set.name} {rr_set.ttl} {rr_set.type} {','.join(rr_set.values)}",
            extra={
                "action": rr_set.action,
                "record_name": rr_set.name,
                "ttl": rr_set.ttl,
                "record_type": rr_set.type,
                "values": list(rr_set.values),
            },
        )
    return instruction
