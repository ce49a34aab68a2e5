"""Post-generation collaborators: SEO sync, related links, operator notifications.

Each collaborator is a small Protocol with one default implementation:

- SeoIntegration.sync_page: mirror generated SEO fields into the meta keys
  the site's SEO layer reads
- LinkRefresher.refresh_links: recompute the page's related links
- Notifier.notify: tell the operator about budget or reliability problems
"""

import re
import time
from typing import Protocol

from pagegen.logging import get_logger
from pagegen.services.host import ContentHost

logger = get_logger(__name__)


class SeoIntegration(Protocol):
    def sync_page(self, page_id: int) -> bool: ...


class LinkRefresher(Protocol):
    def refresh_links(self, page_id: int) -> int: ...


class Notifier(Protocol):
    def notify(self, subject: str, message: str) -> None: ...


# =============================================================================
# SEO sync
# =============================================================================

# generated field -> SEO meta key
SEO_FIELD_TO_META = {
    "seo_focus_keyword": "_seo_focuskw",
    "seo_title": "_seo_title",
    "seo_meta_description": "_seo_metadesc",
    "seo_canonical": "_seo_canonical",
}


class MetaSeoIntegration:
    """Copies the seo_* content fields into SEO meta keys."""

    def __init__(self, host: ContentHost):
        self._host = host

    def sync_page(self, page_id: int) -> bool:
        page = self._host.get_page(page_id)
        if page is None:
            return False

        synced = []
        for field_name, meta_key in SEO_FIELD_TO_META.items():
            value = self._host.get_field(page_id, field_name)
            if value:
                self._host.update_meta(page_id, meta_key, value)
                synced.append(meta_key)

        self._host.update_meta(page_id, "_seo_breadcrumbs_title", page.title)
        logger.info("seo.synced", page_id=page_id, keys=synced)
        return True


# =============================================================================
# Related links
# =============================================================================

TOPIC_MATCH_SCORE = 5
TITLE_WORD_SCORE = 1
MIN_LINK_SCORE = 5
MAX_LINKS = 6

_WORD_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    {"the", "and", "for", "with", "from", "your", "you", "are", "how", "what", "why", "best"}
)


def _title_words(title: str) -> set[str]:
    return {w for w in _WORD_RE.findall(title.lower()) if len(w) >= 3 and w not in _STOPWORDS}


class TopicLinkRefresher:
    """Scores sibling pages by shared topics and title words.

    Score = 5 per shared topic + 1 per shared title word. Pages scoring at
    least 5 are kept, best first, at most 6. The result is written to the
    `links` field as [{page_id, link_title, link_category, link_url}].
    """

    def __init__(self, host: ContentHost):
        self._host = host

    def find_related(self, page_id: int) -> list[dict]:
        page = self._host.get_page(page_id)
        if page is None:
            return []

        source_topics = set(page.topics)
        source_words = _title_words(page.title)

        scored = []
        for candidate in self._host.find_pages(exclude_id=page_id):
            shared_topics = source_topics & set(candidate.topics)
            shared_words = source_words & _title_words(candidate.title)
            score = TOPIC_MATCH_SCORE * len(shared_topics) + TITLE_WORD_SCORE * len(shared_words)
            if score >= MIN_LINK_SCORE:
                scored.append((score, candidate))

        scored.sort(key=lambda pair: (-pair[0], -pair[1].id))
        return [
            {
                "page_id": candidate.id,
                "link_title": candidate.title,
                "link_category": candidate.topics[0] if candidate.topics else "",
                "link_url": self._host.get_permalink(candidate.id),
            }
            for _, candidate in scored[:MAX_LINKS]
        ]

    def refresh_links(self, page_id: int) -> int:
        links = self.find_related(page_id)
        # Keep images already attached to links that survive the refresh
        existing = {
            link.get("page_id"): link.get("link_image")
            for link in (self._host.get_field(page_id, "links") or [])
            if isinstance(link, dict)
        }
        for link in links:
            if existing.get(link["page_id"]):
                link["link_image"] = existing[link["page_id"]]

        self._host.update_field(page_id, "links", links)
        self._host.update_meta(page_id, "_related_links_timestamp", int(time.time()))
        logger.info("links.refreshed", page_id=page_id, link_count=len(links))
        return len(links)


# =============================================================================
# Notifications
# =============================================================================


class LogNotifier:
    """Emits operator notifications as structured warning events."""

    def notify(self, subject: str, message: str) -> None:
        logger.warning("operator.notification", subject=subject, detail=message)
