"""
Change extractor for provisioning tool plans.

Normalizes a raw plan artifact into an ordered list of ResourceChange
records. Three renderings are understood, in order of preference:

* the ``terraform show -json`` plan document
* the ``terraform plan -json`` machine-readable UI stream
* the human-readable text plan (optionally prefixed by terragrunt run-all)

Text plans are only read through anchored, whole-line resource headers, so
resource names or attribute values containing action words are never
mistaken for actions.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ParseInconsistencyError
from .models import ChangeAction, DriftSummary, ResourceChange
from .registry import SecurityRegistry

logger = logging.getLogger(__name__)

TOOL_EXIT_NO_CHANGES = 0
TOOL_EXIT_CHANGES = 2

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

# "12:00:01.123 STDOUT [vpc] terraform: " style prefixes added by terragrunt
TERRAGRUNT_PREFIX = re.compile(
    r"^(?:\S+\s+(?:STDOUT|STDERR)\s+)?(?:\[[^\]]*\]\s+)?(?:(?:terraform|tofu):\s?)?"
)

HEADER_VERBS = {
    "will be created": ChangeAction.CREATE,
    "will be updated in-place": ChangeAction.UPDATE,
    "will be destroyed": ChangeAction.DESTROY,
    "must be replaced": ChangeAction.REPLACE,
    "will be replaced, as requested": ChangeAction.REPLACE,
    "is tainted, so must be replaced": ChangeAction.REPLACE,
}

RESOURCE_HEADER = re.compile(
    r"^ {0,2}# (?P<address>\S.*?) (?P<verb>"
    + "|".join(re.escape(verb) for verb in HEADER_VERBS)
    + r")$"
)

# Any other "# <address> ..." header closes the current resource block
OTHER_HEADER = re.compile(
    r"^ {0,2}# \S+.* (?:will be read during apply|has moved to \S+|will be imported"
    r"|will no longer be managed by \w+|has changed|has been deleted)"
)

RESOURCE_LINE = re.compile(
    r'^(?P<lead>\s*(?:-/\+|\+/-|[~+-])\s+)(?P<keyword>resource|data)\s+"(?P<type>[^"]+)"\s+"[^"]*"'
)

ATTRIBUTE_LINE = re.compile(
    r"^(?P<lead>\s*(?:-/\+|\+/-|[~+-])\s+)(?P<name>[A-Za-z_][\w-]*)\s*(?:=|\{|\[|$)"
)

DEPOSED_SUFFIX = re.compile(r"\s+\(deposed object \w+\)$")

PLAN_TOTALS = re.compile(r"^ {0,2}Plan: (?P<body>.+)$")
PLAN_COUNT = re.compile(r"(?P<count>\d+) to (?P<kind>add|change|destroy)")

DOCUMENT_ACTIONS = {
    ("create",): ChangeAction.CREATE,
    ("update",): ChangeAction.UPDATE,
    ("delete",): ChangeAction.DESTROY,
    ("delete", "create"): ChangeAction.REPLACE,
    ("create", "delete"): ChangeAction.REPLACE,
}

STREAM_ACTIONS = {
    "create": ChangeAction.CREATE,
    "update": ChangeAction.UPDATE,
    "delete": ChangeAction.DESTROY,
    "replace": ChangeAction.REPLACE,
}

# Expected (add, change, destroy) counts as reported by the tool
PlanTotals = Tuple[int, int, int]


class PlanParser:
    """
    Change extractor for provisioning tool output.

    Produces immutable ResourceChange records and cross-checks them against
    the tool's exit code and its own plan totals, raising
    ParseInconsistencyError instead of under-reporting drift.
    """

    def __init__(self, registry: Optional[SecurityRegistry] = None):
        """
        Initialize the plan parser.

        Args:
            registry: Security-sensitive resource registry (defaults to built-ins)
        """
        self.registry = registry or SecurityRegistry()

    def parse(self, raw_output, tool_exit_code: Optional[int] = None) -> List[ResourceChange]:
        """
        Parse raw plan output into normalized resource changes.

        Args:
            raw_output: Plan output as bytes or str
            tool_exit_code: Exit code of the provisioning tool, if known

        Returns:
            Ordered list of ResourceChange records

        Raises:
            ParseInconsistencyError: when the extracted changes disagree with
                the tool's exit code or its reported plan totals
        """
        text = self._decode(raw_output)

        document = self._load_plan_document(text)
        if document is not None:
            logger.info("Parsing structured plan document")
            changes = self._parse_document(document)
            totals = None
        else:
            events = self._load_json_stream(text)
            if events:
                logger.info(f"Parsing machine-readable plan stream ({len(events)} events)")
                changes, totals = self._parse_json_stream(events)
            else:
                logger.info("Parsing text plan output")
                changes, totals = self._parse_text(text)

        self._check_consistency(changes, totals, tool_exit_code)

        logger.info(f"Extracted {len(changes)} resource changes from plan")
        return changes

    def _decode(self, raw_output) -> str:
        if isinstance(raw_output, bytes):
            raw_output = raw_output.decode("utf-8", errors="replace")
        return ANSI_ESCAPE.sub("", raw_output or "")

    def _make_change(
        self,
        address: str,
        resource_type: str,
        action: ChangeAction,
        changed_attributes=(),
    ) -> ResourceChange:
        return ResourceChange(
            address=address,
            resource_type=resource_type,
            action=action,
            security_sensitive=self.registry.is_sensitive(resource_type),
            changed_attributes=tuple(changed_attributes),
        )

    # ------------------------------------------------------------------
    # Structured plan document (terraform show -json)
    # ------------------------------------------------------------------

    def _load_plan_document(self, text: str) -> Optional[Dict[str, Any]]:
        stripped = text.strip()
        if not stripped.startswith("{"):
            return None

        try:
            document = json.loads(stripped)
        except json.JSONDecodeError:
            return None

        if isinstance(document, dict) and (
            "resource_changes" in document or "format_version" in document
        ):
            return document
        return None

    def _parse_document(self, document: Dict[str, Any]) -> List[ResourceChange]:
        changes = []

        for resource_change in document.get("resource_changes") or []:
            if resource_change.get("mode", "managed") != "managed":
                continue

            change = resource_change.get("change") or {}
            action = DOCUMENT_ACTIONS.get(tuple(change.get("actions") or ()))
            if action is None:
                # no-op, read and forget actions are not drift
                continue

            address = resource_change.get("address", "")
            resource_type = resource_change.get("type") or _type_from_address(address)

            changed_attributes = ()
            if action in (ChangeAction.UPDATE, ChangeAction.REPLACE):
                changed_attributes = _diff_attributes(
                    change.get("before"), change.get("after"), change.get("after_unknown")
                )

            changes.append(self._make_change(address, resource_type, action, changed_attributes))

        return changes

    # ------------------------------------------------------------------
    # Machine-readable UI stream (terraform plan -json)
    # ------------------------------------------------------------------

    def _load_json_stream(self, text: str) -> List[Dict[str, Any]]:
        events = []
        for line in text.splitlines():
            line = TERRAGRUNT_PREFIX.sub("", line.strip(), count=1).strip()
            if not line.startswith("{"):
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(event, dict) and "type" in event:
                events.append(event)

        if any(event["type"] in ("planned_change", "change_summary") for event in events):
            return events
        return []

    def _parse_json_stream(
        self, events: List[Dict[str, Any]]
    ) -> Tuple[List[ResourceChange], Optional[PlanTotals]]:
        changes = []
        totals = None

        for event in events:
            if event["type"] == "planned_change":
                change = event.get("change") or {}
                action = STREAM_ACTIONS.get(change.get("action"))
                if action is None:
                    continue
                resource = change.get("resource") or {}
                address = resource.get("addr", "")
                resource_type = resource.get("resource_type") or _type_from_address(address)
                changes.append(self._make_change(address, resource_type, action))

            elif event["type"] == "change_summary":
                summary = event.get("changes") or {}
                if summary.get("operation", "plan") != "plan":
                    continue
                add, change, destroy = totals or (0, 0, 0)
                totals = (
                    add + int(summary.get("add", 0)),
                    change + int(summary.get("change", 0)),
                    destroy + int(summary.get("remove", 0)),
                )

        return changes, totals

    # ------------------------------------------------------------------
    # Human-readable text plan
    # ------------------------------------------------------------------

    def _parse_text(self, text: str) -> Tuple[List[ResourceChange], Optional[PlanTotals]]:
        changes = []
        totals = None
        current = None  # [address, type, action, attributes, attribute column]

        def close_block():
            if current is not None:
                address, resource_type, action, attributes, _ = current
                changes.append(self._make_change(address, resource_type, action, attributes))

        for raw_line in text.splitlines():
            line = TERRAGRUNT_PREFIX.sub("", raw_line.rstrip(), count=1)

            header = RESOURCE_HEADER.match(line)
            if header:
                close_block()
                address = DEPOSED_SUFFIX.sub("", header.group("address"))
                action = HEADER_VERBS[header.group("verb")]
                current = [address, _type_from_address(address), action, [], None]
                continue

            plan_totals = PLAN_TOTALS.match(line)
            if plan_totals:
                close_block()
                current = None
                totals = _add_totals(totals, plan_totals.group("body"))
                continue

            if OTHER_HEADER.match(line):
                close_block()
                current = None
                continue

            if current is None:
                continue

            resource_line = RESOURCE_LINE.match(line)
            if resource_line and current[4] is None:
                current[1] = resource_line.group("type")
                # Top-level attribute names sit four columns right of the keyword
                current[4] = len(resource_line.group("lead")) + 4
                continue

            if current[2] not in (ChangeAction.UPDATE, ChangeAction.REPLACE) or current[4] is None:
                continue

            attribute = ATTRIBUTE_LINE.match(line)
            if attribute and len(attribute.group("lead")) == current[4]:
                name = attribute.group("name")
                if name not in current[3]:
                    current[3].append(name)

        close_block()
        return changes, totals

    # ------------------------------------------------------------------
    # Cross-checks
    # ------------------------------------------------------------------

    def _check_consistency(
        self,
        changes: List[ResourceChange],
        totals: Optional[PlanTotals],
        tool_exit_code: Optional[int],
    ) -> None:
        if tool_exit_code == TOOL_EXIT_CHANGES and not changes:
            raise ParseInconsistencyError(
                "Provisioning tool reported changes (exit code 2) but no resource "
                "changes could be extracted from the plan output. Exit code 2 is also "
                "returned when only outputs change; check the plan artifact for "
                "'Changes to Outputs'"
            )

        if tool_exit_code == TOOL_EXIT_NO_CHANGES and changes:
            raise ParseInconsistencyError(
                f"Provisioning tool reported no changes (exit code 0) but "
                f"{len(changes)} resource changes were extracted from the plan output"
            )

        if totals is not None:
            summary = DriftSummary.from_changes(changes)
            extracted = (
                summary.to_add + summary.to_replace,
                summary.to_change,
                summary.to_destroy + summary.to_replace,
            )
            if extracted != totals:
                raise ParseInconsistencyError(
                    f"Plan totals (add={totals[0]}, change={totals[1]}, destroy={totals[2]}) "
                    f"do not match extracted changes (add={extracted[0]}, "
                    f"change={extracted[1]}, destroy={extracted[2]})"
                )


def _add_totals(totals: Optional[PlanTotals], body: str) -> PlanTotals:
    """Accumulate one ``Plan: ...`` line; run-all emits one per module."""
    counts = {"add": 0, "change": 0, "destroy": 0}
    for match in PLAN_COUNT.finditer(body):
        counts[match.group("kind")] += int(match.group("count"))

    add, change, destroy = totals or (0, 0, 0)
    return add + counts["add"], change + counts["change"], destroy + counts["destroy"]


def _split_address(address: str) -> List[str]:
    """Split a resource address on dots outside index brackets and quotes."""
    parts = []
    current = []
    depth = 0
    quoted = False

    for char in address:
        if char == '"' and depth:
            quoted = not quoted
        elif not quoted and char == "[":
            depth += 1
        elif not quoted and char == "]":
            depth -= 1
        elif char == "." and not depth and not quoted:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)

    parts.append("".join(current))
    return parts


def _type_from_address(address: str) -> str:
    """Derive the resource type from an address like module.app.aws_instance.web[0]."""
    parts = _split_address(address)

    while len(parts) > 2 and parts[0] == "module":
        parts = parts[2:]
    if parts and parts[0] == "data":
        parts = parts[1:]

    return parts[0] if parts and parts[0] else address


def _contains_unknown(value) -> bool:
    if value is True:
        return True
    if isinstance(value, dict):
        return any(_contains_unknown(v) for v in value.values())
    if isinstance(value, list):
        return any(_contains_unknown(v) for v in value)
    return False


def _diff_attributes(before, after, after_unknown) -> Tuple[str, ...]:
    """Top-level attribute names whose values differ or become unknown."""
    before = before if isinstance(before, dict) else {}
    after = after if isinstance(after, dict) else {}
    after_unknown = after_unknown if isinstance(after_unknown, dict) else {}

    changed = []
    for key in sorted(set(before) | set(after) | set(after_unknown)):
        if before.get(key) != after.get(key) or _contains_unknown(after_unknown.get(key)):
            changed.append(key)
    return tuple(changed)
