"""Validation of generated content against resolved block rules.

Content is passed as {block_id: {slot_name: value}}. Rules per slot:

- required and empty (after trim) -> error `required`; other rules skipped
- empty and optional -> skipped
- longer than max_length -> `max_length`; a warning when the slot's
  over_limit_action is truncate (auto_fix will cut it), an error for flag
  and regenerate (a person has to act)
- shorter than validation.min_length -> warning `min_length`
- contains a forbidden pattern (case-insensitive) -> warning `forbidden_pattern`
- must_contain_keyword set and the focus keyword absent -> warning

Non-string values (repeater rows) only count for required-ness.
Issues are values; nothing in this module raises for bad content.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from pagegen.services.block_rules import BlockRuleService

Severity = Literal["error", "warning"]

REGENERATE_NOT_IMPLEMENTED = "regenerate not yet implemented, flagged"


@dataclass(frozen=True)
class ValidationIssue:
    block_id: str
    slot_name: str
    severity: Severity
    rule: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ValidationResult:
    """All issues found for a page."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def passed(self) -> bool:
        return not self.has_errors()

    def has_errors(self) -> bool:
        return any(i.severity == "error" for i in self.issues)

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "issues": [i.to_dict() for i in self.issues],
            "warnings": [i.to_dict() for i in self.warnings],
        }


@dataclass
class AutoFixResult:
    fixed: dict[str, dict[str, Any]]
    remaining_issues: list[ValidationIssue] = field(default_factory=list)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def validate_block(
    block_id: str,
    slot_values: dict[str, Any],
    schema: dict[str, dict],
    focus_keyword: str | None = None,
) -> list[ValidationIssue]:
    """Validate one block's slot values against its content_slots schema."""
    issues: list[ValidationIssue] = []

    for slot_name, slot_def in schema.items():
        value = slot_values.get(slot_name)

        if slot_def.get("required") and _is_empty(value):
            issues.append(
                ValidationIssue(
                    block_id, slot_name, "error", "required",
                    f'Slot "{slot_name}" is required but empty.',
                )
            )
            continue

        if _is_empty(value) or not isinstance(value, str):
            continue

        length = len(value)
        max_length = slot_def.get("max_length") or 0
        rules = slot_def.get("validation") or {}

        if max_length > 0 and length > max_length:
            action = slot_def.get("over_limit_action", "truncate")
            issues.append(
                ValidationIssue(
                    block_id, slot_name,
                    "warning" if action == "truncate" else "error",
                    "max_length",
                    f'Slot "{slot_name}" exceeds max length of {max_length} '
                    f"({length} chars). Action: {action}.",
                )
            )

        min_length = rules.get("min_length") or 0
        if min_length > 0 and length < min_length:
            issues.append(
                ValidationIssue(
                    block_id, slot_name, "warning", "min_length",
                    f'Slot "{slot_name}" is shorter than min length of {min_length} '
                    f"({length} chars).",
                )
            )

        lowered = value.lower()
        for pattern in rules.get("forbidden_patterns") or []:
            if pattern and pattern.lower() in lowered:
                issues.append(
                    ValidationIssue(
                        block_id, slot_name, "warning", "forbidden_pattern",
                        f'Slot "{slot_name}" contains forbidden pattern: "{pattern}".',
                    )
                )

        if rules.get("must_contain_keyword") and focus_keyword:
            if focus_keyword.lower() not in lowered:
                issues.append(
                    ValidationIssue(
                        block_id, slot_name, "warning", "must_contain_keyword",
                        f'Slot "{slot_name}" should contain the focus keyword "{focus_keyword}".',
                    )
                )

    return issues


class ValidationService:
    """Page-level validation and auto-fix using resolved block rules."""

    def __init__(self, rules: BlockRuleService):
        self._rules = rules

    def validate_block(
        self,
        block_id: str,
        slot_values: dict[str, Any],
        schema: dict[str, dict],
        focus_keyword: str | None = None,
    ) -> list[ValidationIssue]:
        return validate_block(block_id, slot_values, schema, focus_keyword)

    def validate_page(
        self,
        slot_content: dict[str, dict[str, Any]],
        block_order: list[str],
        template_id: str | None = None,
        focus_keyword: str | None = None,
    ) -> ValidationResult:
        issues: list[ValidationIssue] = []
        for block_id in block_order:
            schema = self._rules.get_resolved_slot_schema(block_id, template_id)
            if not schema:
                continue
            issues.extend(
                validate_block(block_id, slot_content.get(block_id) or {}, schema, focus_keyword)
            )
        return ValidationResult(issues)

    def auto_fix(
        self,
        slot_content: dict[str, dict[str, Any]],
        block_order: list[str],
        template_id: str | None = None,
    ) -> AutoFixResult:
        """Apply over_limit_action to every over-long string slot.

        truncate cuts the value to exactly max_length. flag and regenerate
        keep the value and report a remaining issue.
        """
        fixed = {block_id: dict(values) for block_id, values in slot_content.items()}
        remaining: list[ValidationIssue] = []

        for block_id in block_order:
            values = fixed.get(block_id)
            if values is None:
                continue
            schema = self._rules.get_resolved_slot_schema(block_id, template_id)

            for slot_name, value in values.items():
                slot_def = schema.get(slot_name) or {}
                max_length = slot_def.get("max_length") or 0
                if not isinstance(value, str) or max_length <= 0 or len(value) <= max_length:
                    continue

                action = slot_def.get("over_limit_action", "truncate")
                if action == "truncate":
                    values[slot_name] = value[:max_length]
                elif action == "regenerate":
                    remaining.append(
                        ValidationIssue(
                            block_id, slot_name, "error", "max_length",
                            f'Slot "{slot_name}" exceeds {max_length} chars '
                            f"({REGENERATE_NOT_IMPLEMENTED}).",
                        )
                    )
                else:
                    remaining.append(
                        ValidationIssue(
                            block_id, slot_name, "error", "max_length",
                            f'Slot "{slot_name}" exceeds {max_length} chars '
                            "(flagged, not truncated).",
                        )
                    )

        return AutoFixResult(fixed=fixed, remaining_issues=remaining)
