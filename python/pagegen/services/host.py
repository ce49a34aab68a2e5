"""Content host interface and its SQLAlchemy implementation.

The generation pipeline never touches page or image storage directly.
It reads and writes through ContentHost:

- Pages: title, type, status, topic terms, content fields, meta
- Images: tag/folder lookup, per-image meta, alt text, new attachments

SqlContentHost stores pages and images in the `pages` / `images` tables.
JSON columns are replaced with a fresh copy on every write so SQLAlchemy
sees the change.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from pagegen.config import get_settings
from pagegen.db.models import Image, Page

GENERATED_PAGE_TYPE = "seo-page"


@dataclass(frozen=True)
class PageRecord:
    """Read-only view of a page."""

    id: int
    page_type: str
    title: str
    slug: str
    status: str
    topics: list[str]


@dataclass(frozen=True)
class ImageRecord:
    """Read-only view of a library image."""

    id: int
    title: str
    tags: list[str]
    folder: str | None
    is_library: bool
    alt_text: str | None
    storage_path: str | None


class ContentHost(Protocol):
    """Narrow interface to the CMS holding pages and images."""

    def get_page(self, page_id: int) -> PageRecord | None: ...

    def get_field(self, page_id: int, name: str, default: Any = None) -> Any: ...

    def get_fields(self, page_id: int) -> dict: ...

    def update_field(self, page_id: int, name: str, value: Any) -> None: ...

    def get_meta(self, page_id: int, key: str, default: Any = None) -> Any: ...

    def update_meta(self, page_id: int, key: str, value: Any) -> None: ...

    def get_topic_terms(self, page_id: int) -> list[str]: ...

    def set_page_status(self, page_id: int, status: str) -> None: ...

    def get_permalink(self, page_id: int) -> str: ...

    def find_pages(self, *, exclude_id: int | None = None) -> list[PageRecord]: ...

    def find_images(
        self,
        tags: list[str],
        *,
        library_only: bool = True,
        require_folder: bool = False,
    ) -> list[int]: ...

    def image_exists(self, image_id: int) -> bool: ...

    def get_image(self, image_id: int) -> ImageRecord | None: ...

    def get_image_meta(self, image_id: int, key: str, default: Any = None) -> Any: ...

    def update_image_meta(self, image_id: int, key: str, value: Any) -> None: ...

    def update_image_text(
        self,
        image_id: int,
        *,
        alt_text: str,
        caption: str | None = None,
        description: str | None = None,
    ) -> None: ...

    def create_image(
        self,
        *,
        title: str,
        storage_path: str,
        content_type: str,
        source_url: str | None = None,
        tags: list[str] | None = None,
        folder: str | None = None,
        is_library: bool = False,
        alt_text: str | None = None,
    ) -> int: ...


def _to_page_record(page: Page) -> PageRecord:
    return PageRecord(
        id=page.id,
        page_type=page.page_type,
        title=page.title,
        slug=page.slug,
        status=page.status,
        topics=list(page.topics or []),
    )


def _to_image_record(image: Image) -> ImageRecord:
    return ImageRecord(
        id=image.id,
        title=image.title,
        tags=list(image.tags or []),
        folder=image.folder,
        is_library=image.is_library,
        alt_text=image.alt_text,
        storage_path=image.storage_path,
    )


class SqlContentHost:
    """ContentHost backed by the pages and images tables."""

    def __init__(self, db: Session, site_url: str | None = None):
        self._db = db
        self._site_url = (site_url or get_settings().site_url).rstrip("/")

    # -------------------------------------------------------------------------
    # Pages
    # -------------------------------------------------------------------------

    def _page(self, page_id: int) -> Page | None:
        return self._db.get(Page, page_id)

    def _require_page(self, page_id: int) -> Page:
        page = self._page(page_id)
        if page is None:
            raise LookupError(f"Page {page_id} does not exist")
        return page

    def get_page(self, page_id: int) -> PageRecord | None:
        page = self._page(page_id)
        return _to_page_record(page) if page else None

    def get_field(self, page_id: int, name: str, default: Any = None) -> Any:
        page = self._page(page_id)
        if page is None:
            return default
        return (page.fields or {}).get(name, default)

    def get_fields(self, page_id: int) -> dict:
        page = self._page(page_id)
        return dict(page.fields or {}) if page else {}

    def update_field(self, page_id: int, name: str, value: Any) -> None:
        page = self._require_page(page_id)
        fields = dict(page.fields or {})
        fields[name] = value
        page.fields = fields
        page.updated_at = datetime.now(UTC)
        self._db.flush()
        self._db.commit()

    def get_meta(self, page_id: int, key: str, default: Any = None) -> Any:
        page = self._page(page_id)
        if page is None:
            return default
        return (page.meta or {}).get(key, default)

    def update_meta(self, page_id: int, key: str, value: Any) -> None:
        page = self._require_page(page_id)
        meta = dict(page.meta or {})
        meta[key] = value
        page.meta = meta
        self._db.flush()
        self._db.commit()

    def get_topic_terms(self, page_id: int) -> list[str]:
        page = self._page(page_id)
        return list(page.topics or []) if page else []

    def set_page_status(self, page_id: int, status: str) -> None:
        page = self._require_page(page_id)
        page.status = status
        page.updated_at = datetime.now(UTC)
        self._db.flush()
        self._db.commit()

    def get_permalink(self, page_id: int) -> str:
        page = self._require_page(page_id)
        return f"{self._site_url}/{page.slug}"

    def find_pages(self, *, exclude_id: int | None = None) -> list[PageRecord]:
        """Published or draft generated pages, newest first."""
        stmt = select(Page).where(Page.page_type == GENERATED_PAGE_TYPE)
        if exclude_id is not None:
            stmt = stmt.where(Page.id != exclude_id)
        stmt = stmt.order_by(Page.id.desc())
        return [_to_page_record(p) for p in self._db.scalars(stmt)]

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    def find_images(
        self,
        tags: list[str],
        *,
        library_only: bool = True,
        require_folder: bool = False,
    ) -> list[int]:
        """Ids of images carrying every tag in `tags`.

        library_only restricts to library images; require_folder restricts to
        images filed in a library folder.

        Tag containment is checked in Python so the query stays portable
        across JSON column types.
        """
        stmt = select(Image)
        if library_only:
            stmt = stmt.where(Image.is_library.is_(True))
        if require_folder:
            stmt = stmt.where(Image.folder.is_not(None))
        stmt = stmt.order_by(Image.id)

        wanted = set(tags)
        return [img.id for img in self._db.scalars(stmt) if wanted.issubset(set(img.tags or []))]

    def image_exists(self, image_id: int) -> bool:
        return self._db.get(Image, image_id) is not None

    def get_image(self, image_id: int) -> ImageRecord | None:
        image = self._db.get(Image, image_id)
        return _to_image_record(image) if image else None

    def get_image_meta(self, image_id: int, key: str, default: Any = None) -> Any:
        image = self._db.get(Image, image_id)
        if image is None:
            return default
        return (image.meta or {}).get(key, default)

    def update_image_meta(self, image_id: int, key: str, value: Any) -> None:
        image = self._db.get(Image, image_id)
        if image is None:
            raise LookupError(f"Image {image_id} does not exist")
        meta = dict(image.meta or {})
        if value is None:
            meta.pop(key, None)
        else:
            meta[key] = value
        image.meta = meta
        self._db.flush()
        self._db.commit()

    def update_image_text(
        self,
        image_id: int,
        *,
        alt_text: str,
        caption: str | None = None,
        description: str | None = None,
    ) -> None:
        image = self._db.get(Image, image_id)
        if image is None:
            raise LookupError(f"Image {image_id} does not exist")
        image.alt_text = alt_text
        image.caption = caption
        image.description = description
        image.updated_at = datetime.now(UTC)
        self._db.flush()
        self._db.commit()

    def create_image(
        self,
        *,
        title: str,
        storage_path: str,
        content_type: str,
        source_url: str | None = None,
        tags: list[str] | None = None,
        folder: str | None = None,
        is_library: bool = False,
        alt_text: str | None = None,
    ) -> int:
        image = Image(
            title=title,
            storage_path=storage_path,
            source_url=source_url,
            content_type=content_type,
            tags=list(tags or []),
            folder=folder,
            is_library=is_library,
            alt_text=alt_text,
            meta={},
        )
        self._db.add(image)
        self._db.flush()
        self._db.commit()
        return image.id
