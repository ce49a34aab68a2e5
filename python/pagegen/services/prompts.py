"""Prompt templates with variable substitution.

Templates are looked up per block type:
1. The JSON file at PROMPT_TEMPLATES_PATH ({block_type: {"system", "user"}}), if it has the block
2. DEFAULT_PROMPTS

Substitution is plain text replacement of known {placeholders}, so literal
braces in templates (JSON examples) are left alone.
"""

import json
from dataclasses import dataclass
from pathlib import Path

from pagegen.config import Settings, get_settings
from pagegen.errors import UnknownBlockTypeError
from pagegen.logging import get_logger
from pagegen.services.host import ContentHost, PageRecord
from pagegen.services.prompt_defaults import DEFAULT_PROMPTS

logger = get_logger(__name__)

PLACEHOLDERS = (
    "page_title",
    "page_topic",
    "focus_keyword",
    "page_type",
    "business_name",
    "business_type",
    "business_description",
    "business_address",
    "service_area",
    "business_phone",
    "business_email",
    "business_url",
    "years_in_business",
    "usps",
    "certifications",
)

BUSINESS_FIELDS = (
    "business_name",
    "business_type",
    "business_description",
    "business_address",
    "service_area",
    "business_phone",
    "business_email",
    "business_url",
    "years_in_business",
)

_COMPARISON_WORDS = {"vs", "versus", "compare", "comparison"}
_EDUCATION_WORDS = {"how", "what", "why", "guide"}
_COLLECTION_WORDS = {"best", "top", "collection"}


@dataclass(frozen=True)
class RenderedPrompt:
    system: str
    user: str


def infer_page_type(title: str) -> str:
    words = set(title.lower().replace(".", " ").split())
    if words & _COMPARISON_WORDS:
        return "comparison"
    if words & _EDUCATION_WORDS:
        return "education"
    if words & _COLLECTION_WORDS:
        return "collection"
    return "general"


def validate_template(template: object) -> list[str]:
    """Return a list of problems with a template (empty if valid)."""
    if not isinstance(template, dict):
        return ["Template must be an object with system and user messages"]

    errors = []
    for key in ("system", "user"):
        if key not in template:
            errors.append(f'Template missing "{key}" message')
        elif not isinstance(template[key], str):
            errors.append(f"{key.capitalize()} message must be a string")
        elif not template[key].strip():
            errors.append(f"{key.capitalize()} message cannot be empty")
    return errors


class PromptTemplateEngine:
    def __init__(self, host: ContentHost | None = None, settings: Settings | None = None):
        self._host = host
        self._settings = settings or get_settings()
        self._custom: dict[str, dict] | None = None

    # =========================================================================
    # Templates
    # =========================================================================

    def get_template(self, block_type: str) -> dict | None:
        custom = self._custom_templates().get(block_type)
        if isinstance(custom, dict):
            return custom
        return DEFAULT_PROMPTS.get(block_type)

    def render_prompt(self, block_type: str, context: dict) -> RenderedPrompt:
        """Substitute context values into the block's template.

        Raises:
            UnknownBlockTypeError: If no template exists for the block.
        """
        template = self.get_template(block_type)
        if template is None:
            raise UnknownBlockTypeError(block_type)

        values = {name: str(context.get(name) or "") for name in PLACEHOLDERS}
        values["business_type"] = values["business_type"] or "content"

        def substitute(text: str) -> str:
            for name, value in values.items():
                text = text.replace("{" + name + "}", value)
            return text

        return RenderedPrompt(system=substitute(template["system"]), user=substitute(template["user"]))

    def update_template(self, block_type: str, template: dict) -> None:
        """Store a custom template in the templates file.

        Raises:
            ValueError: If the template is invalid or no templates file is configured.
        """
        errors = validate_template(template)
        if errors:
            raise ValueError("Template validation failed: " + ", ".join(errors))

        custom = dict(self._custom_templates())
        custom[block_type] = {"system": template["system"], "user": template["user"]}
        self._write_custom(custom)
        logger.info("prompts.template_updated", block_type=block_type)

    def reset_template(self, block_type: str) -> bool:
        """Drop a custom template. Returns False if there was none."""
        custom = dict(self._custom_templates())
        if block_type not in custom:
            return False
        del custom[block_type]
        self._write_custom(custom)
        logger.info("prompts.template_reset", block_type=block_type)
        return True

    # =========================================================================
    # Context
    # =========================================================================

    def build_context(self, page: PageRecord, extra_context: dict | None = None) -> dict:
        """Variables for a page: page data, business profile, then extra_context on top."""
        focus_keyword = None
        if self._host is not None:
            focus_keyword = self._host.get_field(page.id, "seo_focus_keyword")

        context = {
            "page_title": page.title,
            "page_topic": page.topics[0] if page.topics else "",
            "focus_keyword": focus_keyword or page.title,
            "page_type": infer_page_type(page.title),
        }
        for name in BUSINESS_FIELDS:
            context[name] = getattr(self._settings, name)
        context["usps"] = ", ".join(self._settings.usp_list)
        context["certifications"] = ", ".join(self._settings.certification_list)

        context.update(extra_context or {})
        return context

    # =========================================================================
    # Custom template file
    # =========================================================================

    def _custom_templates(self) -> dict:
        if self._custom is not None:
            return self._custom

        self._custom = {}
        path = self._settings.prompt_templates_path
        if path and Path(path).exists():
            try:
                loaded = json.loads(Path(path).read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("prompts.custom_templates_unreadable", path=path, error=str(e))
                return self._custom
            if isinstance(loaded, dict):
                self._custom = {
                    k: v for k, v in loaded.items() if not validate_template(v)
                }
        return self._custom

    def _write_custom(self, custom: dict) -> None:
        path = self._settings.prompt_templates_path
        if not path:
            raise ValueError("PROMPT_TEMPLATES_PATH is not configured")
        Path(path).write_text(json.dumps(custom, indent=2), encoding="utf-8")
        self._custom = custom
