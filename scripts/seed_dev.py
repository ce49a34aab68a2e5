#!/usr/bin/env python
"""Seed development database with fixture pages, images and block rules.

Constraints:
- Refuses to run in staging or prod (PAGEGEN_ENV check)
- Idempotent: pages are matched by slug, images by title, rule profiles
  are only created for blocks without one
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... uv run python ../scripts/seed_dev.py
"""

import os
import sys


def main():
    # 1. Environment check (hard fail in staging/prod)
    pagegen_env = os.getenv("PAGEGEN_ENV", "local")
    if pagegen_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in PAGEGEN_ENV={pagegen_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    # 3. Import fixture data (single source of truth)
    from sqlalchemy import select

    from pagegen.db.models import Image, Page
    from pagegen.db.session import get_session_factory
    from pagegen.services.block_rules import BlockRuleService
    from tests.fixtures import FIXTURE_IMAGES, FIXTURE_PAGES

    db = get_session_factory()()
    created_pages = created_images = 0

    try:
        # 4. Idempotent seeding
        for fields in FIXTURE_PAGES:
            if db.scalar(select(Page).where(Page.slug == fields["slug"])) is None:
                db.add(Page(page_type="seo-page", status="draft", meta={}, **fields))
                created_pages += 1

        for fields in FIXTURE_IMAGES:
            if db.scalar(select(Image).where(Image.title == fields["title"])) is None:
                db.add(Image(is_library=True, meta={}, **fields))
                created_images += 1

        db.commit()
        profiles = BlockRuleService(db).seed_from_config()
    finally:
        db.close()

    # 5. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"PAGEGEN_ENV: {pagegen_env}")
    print()
    print(f"Pages created: {created_pages}")
    print(f"Images created: {created_images}")
    print(f"Block rule profiles created: {profiles}")


if __name__ == "__main__":
    main()
