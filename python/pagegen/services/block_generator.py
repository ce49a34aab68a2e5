"""Generation of one content block for one page.

generate_block runs the full per-block pipeline:

1. Validate the page (exists, generated page type)
2. Check the monthly budget
3. Build the prompt context and render the block's template
4. Call the provider
5. Parse the completion into content fields
6. Auto-fix (truncate) and validate against the resolved block rules
7. Persist fields and the block's generation meta
8. Log tokens and cost
9. Assign library images (hero image, process step images)

Any exception up to step 8 is recorded as a failed generation log entry
(zero tokens, zero cost) and re-raised. Image assignment runs once the
success entry is written; its errors are logged and the block stays
successful. Validation issues never raise; they are returned in the
result metadata.
"""

import time
from dataclasses import dataclass
from datetime import UTC, datetime

from pagegen.config import Settings, get_settings
from pagegen.db.models import LogStatus
from pagegen.errors import InvalidPageError
from pagegen.logging import get_logger
from pagegen.services.blocks import METADATA_BLOCK, get_block_type
from pagegen.services.cost_tracking import CostTracker, calculate_cost
from pagegen.services.host import GENERATED_PAGE_TYPE, ContentHost, PageRecord
from pagegen.services.image_matching import ImageContext, ImageMatcher
from pagegen.services.llm import ContentProviderClient, GenerationOptions
from pagegen.services.prompts import PromptTemplateEngine
from pagegen.services.validation import ValidationService

logger = get_logger(__name__)

TEMPLATE_META_KEY = "_seo_template_id"
INVALID_PAGE_MESSAGE = "Page not found or invalid type"


@dataclass(frozen=True)
class BlockGenerationResult:
    content: dict
    metadata: dict


def generated_meta_key(block_type: str) -> str:
    return f"_seo_gen_{block_type}_generated"


def timestamp_meta_key(block_type: str) -> str:
    return f"_seo_gen_{block_type}_timestamp"


class BlockContentGenerator:
    def __init__(
        self,
        host: ContentHost,
        provider: ContentProviderClient,
        cost_tracker: CostTracker,
        validation: ValidationService,
        prompts: PromptTemplateEngine,
        image_matcher: ImageMatcher | None = None,
        *,
        settings: Settings | None = None,
    ):
        self._host = host
        self._provider = provider
        self._costs = cost_tracker
        self._validation = validation
        self._prompts = prompts
        self._images = image_matcher
        self._settings = settings or get_settings()

    def generate_block(
        self,
        page_id: int,
        block_type: str,
        extra_context: dict | None = None,
        user_id: str | None = None,
    ) -> BlockGenerationResult:
        """Generate, validate and persist one block.

        Raises:
            InvalidPageError: Page missing or not a generated page.
            UnknownBlockTypeError: Block type not registered.
            BudgetExceededError: Monthly budget reached.
            ProviderError: Provider call failed after the client's retries.
            BlockParseError: Completion lacks the keys the block needs.
        """
        start = time.monotonic()
        model = self._provider.default_model
        logger.info("generation.block.started", page_id=page_id, block_type=block_type)

        try:
            page = self._require_page(page_id)
            block = get_block_type(block_type)
            self._costs.check_budget_limit()

            context = self._prompts.build_context(page, extra_context)
            rendered = self._prompts.render_prompt(block_type, context)
            response = self._provider.generate(
                rendered.user,
                GenerationOptions(model=model, system_message=rendered.system),
            )

            fields = block.parse(response.content)
            if block_type == METADATA_BLOCK:
                fields["seo_canonical"] = self._host.get_permalink(page_id)

            template_id = self._host.get_meta(page_id, TEMPLATE_META_KEY)
            fixed = self._validation.auto_fix({block_type: fields}, [block_type], template_id)
            fields = fixed.fixed[block_type]
            focus_keyword = fields.get("seo_focus_keyword") or context.get("focus_keyword")
            result = self._validation.validate_page(
                {block_type: fields}, [block_type], template_id, focus_keyword
            )

            for name, value in fields.items():
                self._host.update_field(page_id, name, value)
            self._host.update_meta(page_id, generated_meta_key(block_type), True)
            self._host.update_meta(page_id, timestamp_meta_key(block_type), int(time.time()))

            cost = calculate_cost(response.prompt_tokens, response.completion_tokens, response.model)
            self._costs.log_generation(
                page_id=page_id,
                block_type=block_type,
                status=LogStatus.success.value,
                model=response.model,
                prompt_tokens=response.prompt_tokens,
                completion_tokens=response.completion_tokens,
                total_tokens=response.total_tokens,
                cost=cost,
                user_id=user_id,
            )

        except Exception as e:
            self._costs.log_generation(
                page_id=page_id,
                block_type=block_type,
                status=LogStatus.failed.value,
                model=model,
                error_message=str(e),
                user_id=user_id,
            )
            logger.warning(
                "generation.block.failed",
                page_id=page_id,
                block_type=block_type,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        if self._settings.enable_auto_image_assignment and self._images is not None:
            try:
                self._assign_images(page, block_type, fields, context)
            except Exception as e:
                logger.warning(
                    "generation.block.image_assignment_failed",
                    page_id=page_id,
                    block_type=block_type,
                    error_type=type(e).__name__,
                    error=str(e),
                )

        generation_time = round(time.monotonic() - start, 3)
        logger.info(
            "generation.block.finished",
            page_id=page_id,
            block_type=block_type,
            tokens_total=response.total_tokens,
            cost=cost,
            generation_time=generation_time,
            issue_count=len(result.issues),
        )
        return BlockGenerationResult(
            content=fields,
            metadata={
                "prompt_tokens": response.prompt_tokens,
                "completion_tokens": response.completion_tokens,
                "total_tokens": response.total_tokens,
                "cost": cost,
                "generation_time": generation_time,
                "model": response.model,
                "timestamp": datetime.now(UTC).isoformat(),
                "validation_issues": [i.to_dict() for i in result.issues],
            },
        )

    def _require_page(self, page_id: int) -> PageRecord:
        page = self._host.get_page(page_id)
        if page is None or page.page_type != GENERATED_PAGE_TYPE:
            raise InvalidPageError(INVALID_PAGE_MESSAGE)
        return page

    def _assign_images(
        self, page: PageRecord, block_type: str, fields: dict, context: dict
    ) -> None:
        base = {
            "focus_keyword": context.get("focus_keyword") or "",
            "category": context.get("page_topic") or "",
            "page_title": page.title,
        }

        if block_type == "hero":
            image_context = ImageContext(topic=context.get("page_topic") or "", **base)
            image_id = self._images.find_matching_image(image_context)
            if image_id is not None:
                self._host.update_field(page.id, "hero_image", image_id)
                self._images.assign_image_with_metadata(image_id, page.id, image_context)
                fields["hero_image"] = image_id

        elif block_type == "process":
            steps = [dict(step) for step in fields.get("process_steps") or []]
            assigned = 0
            for step in steps:
                image_context = ImageContext(topic=step.get("step_title") or "", **base)
                image_id = self._images.find_matching_image(image_context)
                if image_id is None:
                    continue
                step["step_image"] = image_id
                self._images.assign_image_with_metadata(image_id, page.id, image_context)
                assigned += 1
            if assigned:
                self._host.update_field(page.id, "process_steps", steps)
                fields["process_steps"] = steps
