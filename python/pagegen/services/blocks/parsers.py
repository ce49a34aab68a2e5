"""Parsers from provider output to host content fields.

Provider output is expected to be JSON, optionally wrapped in a ```json
fence. Each parser receives the decoded object (None if decoding failed)
and the raw text, checks the keys it needs, and returns a flat dict of
field name -> value ready to persist.

A parser that cannot find its required keys raises BlockParseError naming
the expected shape. serp_answer also accepts plain text.
"""

import json
import re
from typing import Any

from pagegen.errors import BlockParseError

_JSON_FENCE_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
_ANY_FENCE_RE = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_SPACES_RE = re.compile(r"[ \t\r\f\v]+")


def strip_fences(raw: str) -> str:
    """Return the body of the first code fence, or the input unchanged."""
    match = _JSON_FENCE_RE.search(raw) or _ANY_FENCE_RE.search(raw)
    return match.group(1) if match else raw


def decode_json(raw: str) -> dict | None:
    """Strip fences and decode; None unless the result is a JSON object."""
    try:
        data = json.loads(strip_fences(raw).strip())
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def clean_text(value: Any) -> str:
    """Single-line text: tags removed, whitespace collapsed."""
    if value is None:
        return ""
    text = _TAG_RE.sub("", str(value))
    return " ".join(text.split())


def clean_textarea(value: Any) -> str:
    """Multi-line text: tags removed, line breaks kept."""
    if value is None:
        return ""
    text = _TAG_RE.sub("", str(value))
    lines = [_SPACES_RE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(lines).strip()


def clean_url(value: Any) -> str:
    if not value:
        return ""
    url = str(value).strip()
    if not re.match(r"^(https?://|/)", url):
        return ""
    return url


def _require(data: dict | None, keys: tuple[str, ...], message: str) -> dict:
    if data is None or any(key not in data for key in keys):
        raise BlockParseError(message)
    return data


def _items(value: Any) -> list:
    return value if isinstance(value, list) else []


# =============================================================================
# Block parsers
# =============================================================================


def parse_seo_metadata(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("focus_keyword", "seo_title", "meta_description"),
        "Invalid SEO metadata format. Expected JSON with focus_keyword, seo_title, "
        "and meta_description.",
    )
    return {
        "seo_focus_keyword": clean_text(data["focus_keyword"]),
        "seo_title": clean_text(data["seo_title"]),
        "seo_meta_description": clean_text(data["meta_description"]),
        # Filled with the page permalink by the block generator
        "seo_canonical": "",
    }


def parse_hero(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("headline", "subheadline"),
        "Invalid hero content format. Expected JSON with headline and subheadline.",
    )
    return {
        "hero_title": clean_text(data["headline"]),
        "hero_subtitle": clean_text(data["subheadline"]),
        "hero_summary": clean_textarea(data.get("summary")),
    }


def parse_serp_answer(data: dict | None, raw: str) -> dict:
    if data and "answer" in data:
        text = data["answer"]
    else:
        text = raw.strip()

    paragraph = data["paragraph"] if data and "paragraph" in data else text
    bullets = [{"bullet_text": clean_text(b)} for b in _items((data or {}).get("bullets"))]
    return {
        "answer_heading": clean_text((data or {}).get("heading")),
        "answer_paragraph": clean_textarea(paragraph),
        "answer_bullets": bullets,
    }


def parse_product_criteria(data: dict | None, raw: str) -> dict:
    if data is None or not isinstance(data.get("criteria"), list):
        raise BlockParseError("Invalid product criteria format. Expected JSON with criteria array.")
    items = [
        {"name": clean_text(item["title"]), "explanation": clean_textarea(item["explanation"])}
        for item in data["criteria"]
        if isinstance(item, dict) and "title" in item and "explanation" in item
    ]
    return {
        "criteria_heading": clean_text(data.get("heading")),
        "criteria_items": items,
    }


def parse_materials(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("introduction", "materials"),
        "Invalid materials format. Expected JSON with introduction and materials array.",
    )
    items = [
        {
            "material": clean_text(item["name"]),
            "pros": clean_textarea(item.get("pros")),
            "cons": clean_textarea(item.get("cons")),
            "best_for": clean_text(item.get("best_for")),
            "allergy_notes": clean_text(item.get("allergy_notes")),
            "care": clean_text(item.get("care")),
        }
        for item in _items(data["materials"])
        if isinstance(item, dict) and "name" in item and "description" in item
    ]
    return {
        "materials_heading": clean_text(data.get("heading")),
        "materials_items": items,
    }


def parse_process(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("introduction", "steps"),
        "Invalid process format. Expected JSON with introduction and steps array.",
    )
    steps = [
        {"step_title": clean_text(item["title"]), "step_text": clean_textarea(item["description"])}
        for item in _items(data["steps"])
        if isinstance(item, dict) and "title" in item and "description" in item
    ]
    return {
        "process_heading": clean_text(data.get("heading")),
        "process_steps": steps,
    }


def parse_comparison(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("introduction", "factors", "options"),
        "Invalid comparison format. Expected JSON with introduction, factors, and options.",
    )
    options = [o for o in _items(data["options"]) if isinstance(o, dict)]
    left = options[0] if len(options) > 0 else {}
    right = options[1] if len(options) > 1 else {}
    left_values = _items(left.get("values"))
    right_values = _items(right.get("values"))

    rows = []
    for index, factor in enumerate(_items(data["factors"])):
        rows.append(
            {
                "attribute": clean_text(factor),
                "left_text": clean_text(left_values[index] if index < len(left_values) else ""),
                "right_text": clean_text(right_values[index] if index < len(right_values) else ""),
            }
        )

    return {
        "comparison_heading": clean_text(data.get("heading")),
        "comparison_left_label": clean_text(left.get("name")),
        "comparison_right_label": clean_text(right.get("name")),
        "comparison_summary": clean_textarea(data["introduction"]),
        "comparison_rows": rows,
    }


def parse_product_showcase(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("introduction", "products"),
        "Invalid product showcase format. Expected JSON with introduction and products array.",
    )
    products = [
        {
            "product_name": clean_text(item["name"]),
            "product_sku": clean_text(item.get("sku")),
            "alt_image_url": clean_url(item.get("image_url")),
        }
        for item in _items(data["products"])
        if isinstance(item, dict) and "name" in item
    ]
    return {
        "showcase_heading": clean_text(data.get("heading")),
        "showcase_intro": clean_textarea(data["introduction"]),
        "showcase_products": products,
    }


def parse_size_fit(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("introduction", "tips"),
        "Invalid size & fit format. Expected JSON with introduction and tips array.",
    )
    notes = data.get("comfort_notes", data["introduction"])
    return {
        "size_heading": clean_text(data.get("heading")),
        "comfort_fit_notes": clean_textarea(notes),
    }


def parse_care_warranty(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("care", "warranty"),
        "Invalid care & warranty format. Expected JSON with care and warranty sections.",
    )
    care = data["care"] if isinstance(data["care"], dict) else {}
    warranty = data["warranty"] if isinstance(data["warranty"], dict) else {}
    return {
        "care_heading": clean_text(care.get("heading")),
        "care_bullets": [{"bullet": clean_textarea(tip)} for tip in _items(care.get("tips"))],
        "warranty_heading": clean_text(warranty.get("heading")),
        "warranty_text": clean_textarea(warranty.get("information")),
    }


def parse_ethics(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("introduction", "aspects"),
        "Invalid ethics format. Expected JSON with introduction and aspects array.",
    )
    certifications = [
        {"cert_name": clean_text(cert["name"]), "cert_link": clean_url(cert.get("link"))}
        for cert in _items(data.get("certifications"))
        if isinstance(cert, dict) and "name" in cert
    ]
    return {
        "ethics_heading": clean_text(data.get("heading")),
        "ethics_text": clean_textarea(data["introduction"]),
        "certifications": certifications,
    }


def parse_faqs(data: dict | None, raw: str) -> dict:
    if data is None or not isinstance(data.get("faqs"), list):
        raise BlockParseError("Invalid FAQs format. Expected JSON with faqs array.")
    items = [
        {"question": clean_text(item["question"]), "answer": clean_textarea(item["answer"])}
        for item in data["faqs"]
        if isinstance(item, dict) and "question" in item and "answer" in item
    ]
    return {
        "faqs_heading": clean_text(data.get("heading")),
        "faq_items": items,
    }


def parse_cta(data: dict | None, raw: str) -> dict:
    data = _require(
        data,
        ("heading", "body"),
        "Invalid CTA format. Expected JSON with heading and body.",
    )
    return {
        "cta_heading": clean_text(data["heading"]),
        "cta_text": clean_textarea(data["body"]),
        "cta_primary_label": clean_text(data.get("primary_label")),
        "cta_primary_url": clean_url(data.get("primary_url")),
        "cta_secondary_label": clean_text(data.get("secondary_label")),
        "cta_secondary_url": clean_url(data.get("secondary_url")),
    }
