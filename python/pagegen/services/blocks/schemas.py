"""Static (factory) rule schemas for every block type.

These are the bottom layer of rule resolution; stored profiles and
template overrides are merged on top by BlockRuleService.

Slot defaults: text, max_length 100, required, truncate when over limit,
no minimum length, no forbidden patterns, no keyword requirement.
Repeater slots (lists of rows) are only checked for required-ness.
"""

from copy import deepcopy


def slot(
    max_length: int = 100,
    *,
    type: str = "text",
    required: bool = True,
    over_limit_action: str = "truncate",
    min_length: int = 0,
    forbidden_patterns: list[str] | None = None,
    must_contain_keyword: bool = False,
) -> dict:
    return {
        "type": type,
        "max_length": max_length,
        "required": required,
        "over_limit_action": over_limit_action,
        "validation": {
            "min_length": min_length,
            "forbidden_patterns": list(forbidden_patterns or []),
            "must_contain_keyword": must_contain_keyword,
        },
    }


def repeater(*, required: bool = True) -> dict:
    return {"type": "repeater", "required": required}


def image(
    label: str,
    *,
    desktop: tuple[int, int] = (800, 600),
    mobile: tuple[int, int] | None = None,
    required: bool = False,
) -> dict:
    return {
        "label": label,
        "desktop": list(desktop),
        "mobile": list(mobile or desktop),
        "required": required,
        "alt_text_required": True,
        "source_rule": "library",
    }


def schema(content_slots: dict, images: list[dict] | None = None) -> dict:
    return {
        "content_slots": content_slots,
        "images": images or [],
        "breadcrumb": {"enabled": False, "pattern": "Home / {page_title}"},
    }


HEADING = slot(100, required=False)

_MARKETING_SPEAK = ["click here", "buy now", "lorem ipsum"]

BLOCK_SCHEMAS: dict[str, dict] = {
    "seo_metadata": schema(
        {
            "seo_focus_keyword": slot(60),
            "seo_title": slot(60, must_contain_keyword=True),
            "seo_meta_description": slot(
                160, type="textarea", min_length=70, must_contain_keyword=True
            ),
            "seo_canonical": slot(255, type="url", required=False),
        }
    ),
    "hero": schema(
        {
            "hero_title": slot(100, must_contain_keyword=True),
            "hero_subtitle": slot(150),
            "hero_summary": slot(400, type="textarea", required=False),
        },
        [image("Hero Image", desktop=(1600, 900), mobile=(800, 600), required=True)],
    ),
    "serp_answer": schema(
        {
            "answer_heading": HEADING,
            "answer_paragraph": slot(
                600, type="textarea", min_length=40, forbidden_patterns=_MARKETING_SPEAK
            ),
            "answer_bullets": repeater(required=False),
        }
    ),
    "product_criteria": schema(
        {
            "criteria_heading": HEADING,
            "criteria_items": repeater(),
        }
    ),
    "materials": schema(
        {
            "materials_heading": HEADING,
            "materials_items": repeater(),
        }
    ),
    "process": schema(
        {
            "process_heading": HEADING,
            "process_steps": repeater(),
        },
        [image("Step Image")],
    ),
    "comparison": schema(
        {
            "comparison_heading": HEADING,
            "comparison_left_label": slot(50),
            "comparison_right_label": slot(50),
            "comparison_summary": slot(400, type="textarea", required=False),
            "comparison_rows": repeater(),
        }
    ),
    "product_showcase": schema(
        {
            "showcase_heading": HEADING,
            "showcase_intro": slot(400, type="textarea", required=False),
            "showcase_products": repeater(required=False),
        }
    ),
    "size_fit": schema(
        {
            "size_heading": HEADING,
            "comfort_fit_notes": slot(600, type="textarea"),
        }
    ),
    "care_warranty": schema(
        {
            "care_heading": HEADING,
            "care_bullets": repeater(),
            "warranty_heading": HEADING,
            "warranty_text": slot(600, type="textarea"),
        }
    ),
    "ethics": schema(
        {
            "ethics_heading": HEADING,
            "ethics_text": slot(800, type="textarea"),
            "certifications": repeater(required=False),
        }
    ),
    "faqs": schema(
        {
            "faqs_heading": HEADING,
            "faq_items": repeater(),
        }
    ),
    "cta": schema(
        {
            "cta_heading": slot(100),
            "cta_text": slot(300, type="textarea", forbidden_patterns=_MARKETING_SPEAK),
            "cta_primary_label": slot(50, required=False),
            "cta_primary_url": slot(255, type="url", required=False),
            "cta_secondary_label": slot(50, required=False),
            "cta_secondary_url": slot(255, type="url", required=False),
        }
    ),
}


def get_factory_schema(block_id: str) -> dict | None:
    """Deep copy of the static schema for a block, or None if unknown."""
    found = BLOCK_SCHEMAS.get(block_id)
    return deepcopy(found) if found is not None else None
