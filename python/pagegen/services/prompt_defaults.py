"""Built-in prompt templates, one per block type.

Each template has a system and a user message. Placeholders in braces are
substituted by PromptTemplateEngine.render_prompt. Every user message asks
for a JSON object shaped the way the block's parser expects.
"""

SYSTEM_MESSAGE = (
    "You are an experienced {business_type} copywriter for {business_name}. "
    "You write accurate, helpful page content for shoppers and search engines. "
    "Always reply with a single valid JSON object and nothing else."
)

_PAGE = 'Page title: "{page_title}"\nTopic: {page_topic}\nFocus keyword: "{focus_keyword}"\n'

DEFAULT_PROMPTS: dict[str, dict[str, str]] = {
    "seo_metadata": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Write SEO metadata for this page.\n"
        "- seo_title: at most 60 characters and contains the focus keyword\n"
        "- meta_description: 120 to 160 characters and contains the focus keyword\n"
        'Return JSON: {"focus_keyword": "...", "seo_title": "...", "meta_description": "..."}',
    },
    "hero": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Write the hero section for this {page_type} page.\n"
        "- headline: at most 100 characters, includes the focus keyword\n"
        "- subheadline: at most 150 characters\n"
        "- summary: two or three sentences, at most 400 characters\n"
        'Return JSON: {"headline": "...", "subheadline": "...", "summary": "..."}',
    },
    "serp_answer": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Write a direct answer a search engine could show as a featured snippet.\n"
        "- heading: a question-style heading\n"
        "- paragraph: 40 to 60 words answering it\n"
        "- bullets: three to five short supporting points\n"
        'Return JSON: {"heading": "...", "paragraph": "...", "bullets": ["..."]}',
    },
    "product_criteria": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "List the criteria a shopper should use to choose products for this page.\n"
        "Give four to six criteria with a one or two sentence explanation each.\n"
        'Return JSON: {"heading": "...", "criteria": [{"title": "...", "explanation": "..."}]}',
    },
    "materials": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Explain the materials commonly used for these products.\n"
        "For each of three to five materials give a description, pros, cons, who it is "
        "best for, allergy notes and care advice.\n"
        'Return JSON: {"heading": "...", "introduction": "...", "materials": [{"name": "...", '
        '"description": "...", "pros": "...", "cons": "...", "best_for": "...", '
        '"allergy_notes": "...", "care": "..."}]}',
    },
    "process": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Describe, step by step, how a customer goes from browsing to receiving their "
        "order. Use four to six steps.\n"
        'Return JSON: {"heading": "...", "introduction": "...", "steps": [{"title": "...", '
        '"description": "..."}]}',
    },
    "comparison": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Compare the two most common options a shopper weighs for this page.\n"
        "List four to six factors and give each option one short value per factor, in the "
        "same order as the factors.\n"
        'Return JSON: {"heading": "...", "introduction": "...", "factors": ["..."], '
        '"options": [{"name": "...", "values": ["..."]}, {"name": "...", "values": ["..."]}]}',
    },
    "product_showcase": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Introduce a showcase of products that fit this page. Suggest three to six "
        "representative product names; leave sku and image_url empty if unknown.\n"
        'Return JSON: {"heading": "...", "introduction": "...", "products": [{"name": "...", '
        '"sku": "", "image_url": ""}]}',
    },
    "size_fit": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Give sizing and fit guidance for these products, plus notes on comfort.\n"
        'Return JSON: {"heading": "...", "introduction": "...", "tips": ["..."], '
        '"comfort_notes": "..."}',
    },
    "care_warranty": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Write care instructions (four to six tips) and a short warranty summary for "
        "{business_name}.\n"
        'Return JSON: {"care": {"heading": "...", "tips": ["..."]}, '
        '"warranty": {"heading": "...", "information": "..."}}',
    },
    "ethics": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Describe responsible sourcing and ethics relevant to these products.\n"
        "Known certifications: {certifications}\n"
        'Return JSON: {"heading": "...", "introduction": "...", "aspects": ["..."], '
        '"certifications": [{"name": "...", "link": ""}]}',
    },
    "faqs": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Write five to eight frequently asked questions with concise answers "
        "(at most 600 characters each).\n"
        'Return JSON: {"heading": "...", "faqs": [{"question": "...", "answer": "..."}]}',
    },
    "cta": {
        "system": SYSTEM_MESSAGE,
        "user": _PAGE
        + "Write a closing call to action for {business_name}.\n"
        "What makes us different: {usps}\n"
        "Contact: {business_phone} {business_email} {business_url}\n"
        'Return JSON: {"heading": "...", "body": "...", "primary_label": "...", '
        '"primary_url": "", "secondary_label": "...", "secondary_url": ""}',
    },
}
