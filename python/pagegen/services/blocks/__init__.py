"""Block type registry.

A block is one section of a generated page. Each block type pairs a parser
(provider output -> content fields) with a static rule schema, and lists
the image slots filled after generation.

Usage:
    from pagegen.services.blocks import get_block_type, parse_block_content

    fields = parse_block_content("hero", raw_completion)
"""

from collections.abc import Callable
from dataclasses import dataclass

from pagegen.errors import UnknownBlockTypeError
from pagegen.services.blocks import parsers
from pagegen.services.blocks.schemas import BLOCK_SCHEMAS, get_factory_schema

Parser = Callable[[dict | None, str], dict]

METADATA_BLOCK = "seo_metadata"


@dataclass(frozen=True)
class BlockType:
    """A registered block type.

    Attributes:
        name: Block tag used in queue items, prompts and meta keys
        parser: Maps (decoded JSON or None, raw text) to content fields
        schema: Static rule schema (see blocks.schemas)
        image_slots: Content fields that receive an auto-assigned image
    """

    name: str
    parser: Parser
    schema: dict
    image_slots: tuple[str, ...] = ()

    def parse(self, raw: str) -> dict:
        return self.parser(parsers.decode_json(raw), raw)


DEFAULT_BLOCK_ORDER: list[str] = [
    "seo_metadata",
    "hero",
    "serp_answer",
    "product_criteria",
    "materials",
    "process",
    "comparison",
    "product_showcase",
    "size_fit",
    "care_warranty",
    "ethics",
    "faqs",
    "cta",
]

_PARSERS: dict[str, Parser] = {
    "seo_metadata": parsers.parse_seo_metadata,
    "hero": parsers.parse_hero,
    "serp_answer": parsers.parse_serp_answer,
    "product_criteria": parsers.parse_product_criteria,
    "materials": parsers.parse_materials,
    "process": parsers.parse_process,
    "comparison": parsers.parse_comparison,
    "product_showcase": parsers.parse_product_showcase,
    "size_fit": parsers.parse_size_fit,
    "care_warranty": parsers.parse_care_warranty,
    "ethics": parsers.parse_ethics,
    "faqs": parsers.parse_faqs,
    "cta": parsers.parse_cta,
}

_IMAGE_SLOTS: dict[str, tuple[str, ...]] = {
    "hero": ("hero_image",),
    "process": ("step_image",),
}

BLOCK_TYPES: dict[str, BlockType] = {
    name: BlockType(
        name=name,
        parser=_PARSERS[name],
        schema=BLOCK_SCHEMAS[name],
        image_slots=_IMAGE_SLOTS.get(name, ()),
    )
    for name in DEFAULT_BLOCK_ORDER
}


def is_known_block(block_type: str) -> bool:
    return block_type in BLOCK_TYPES


def get_block_type(block_type: str) -> BlockType:
    """Look up a registered block type.

    Raises:
        UnknownBlockTypeError: If the tag is not registered.
    """
    try:
        return BLOCK_TYPES[block_type]
    except KeyError:
        raise UnknownBlockTypeError(block_type) from None


def parse_block_content(block_type: str, raw: str) -> dict:
    """Parse provider output for a block into content fields.

    Raises:
        UnknownBlockTypeError: If the tag is not registered.
        BlockParseError: If the output lacks the keys the block needs.
    """
    return get_block_type(block_type).parse(raw)


__all__ = [
    "BLOCK_TYPES",
    "DEFAULT_BLOCK_ORDER",
    "METADATA_BLOCK",
    "BlockType",
    "get_block_type",
    "get_factory_schema",
    "is_known_block",
    "parse_block_content",
]
