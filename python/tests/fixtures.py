"""Fixture pages and library images.

Single source of truth for the dev seed script and the tests that need a
small, realistic catalog.
"""

FIXTURE_PAGES = [
    {
        "title": "Best Gold Engagement Rings",
        "slug": "best-gold-engagement-rings",
        "topics": ["Engagement Rings"],
        "fields": {"seo_focus_keyword": "gold engagement rings"},
    },
    {
        "title": "Platinum vs Gold Wedding Bands",
        "slug": "platinum-vs-gold-wedding-bands",
        "topics": ["Wedding Bands"],
        "fields": {},
    },
    {
        "title": "How to Choose Mens Wedding Rings",
        "slug": "how-to-choose-mens-wedding-rings",
        "topics": ["Wedding Bands", "Mens"],
        "fields": {},
    },
]

FIXTURE_IMAGES = [
    {
        "title": "Gold ring on velvet",
        "tags": ["gold", "engagement", "rings"],
        "folder": "engagement-rings",
    },
    {
        "title": "Platinum band close-up",
        "tags": ["platinum", "wedding", "bands"],
        "folder": "wedding-bands",
    },
    {"title": "Mens tungsten band", "tags": ["mens", "wedding", "rings"], "folder": None},
    {"title": "Ring box", "tags": ["rings"], "folder": None},
]
