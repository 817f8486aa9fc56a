"""Context builder that keeps page and browsing context within token budgets.

Token counts produced here are advisory. The default estimator assumes roughly
four characters per token and a flat cost per history or bookmark entry; it is
not calibrated against any real tokenizer and never blocks a request.
"""

import math
import re
from typing import Protocol

import tiktoken

from copilot.models.context import (
    DEFAULT_LIMITS,
    FULL_LIMITS,
    MINIMAL_LIMITS,
    BrowsingContext,
    ContextLimits,
    LinkItem,
    OptimizedContext,
    PageCapture,
    PageContent,
    ReadableContent,
    UseCase,
)
from copilot.utils.logging import get_logger

logger = get_logger(__name__)

ELLIPSIS = "..."
VISION_TITLE_LIMIT = 200
SELECTED_TEXT_LIMIT = 500
ITEM_TITLE_LIMIT = 100
ITEM_URL_LIMIT = 200

# Applied again when rendering the prompt, whatever profile produced the context
PROMPT_CONTENT_LIMIT = 5000
PROMPT_ITEM_LIMIT = 10

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


class TokenEstimator(Protocol):
    """Estimates how many tokens a piece of context will cost."""

    def estimate_text(self, text: str) -> int:
        """Estimate tokens for free text."""
        ...

    def estimate_item(self, item: LinkItem) -> int:
        """Estimate tokens for one history or bookmark entry."""
        ...


class HeuristicTokenEstimator:
    """About four characters per token, a flat cost per link item."""

    def __init__(self, chars_per_token: int = 4, tokens_per_item: int = 60):
        self.chars_per_token = chars_per_token
        self.tokens_per_item = tokens_per_item

    def estimate_text(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)

    def estimate_item(self, item: LinkItem) -> int:
        return self.tokens_per_item


class TiktokenEstimator:
    """Estimator backed by a tiktoken encoding, falling back to the heuristic."""

    tokenizer: tiktoken.Encoding | None = None

    def __init__(self, encoding_name: str = "cl100k_base", item_overhead: int = 8):
        self.fallback = HeuristicTokenEstimator()
        self.item_overhead = item_overhead

        try:
            self.tokenizer = tiktoken.get_encoding(encoding_name)
        except Exception as e:
            logger.warning(f"Could not load tiktoken encoding {encoding_name}, using heuristic: {e}")
            self.tokenizer = None

    def estimate_text(self, text: str) -> int:
        if self.tokenizer is None:
            return self.fallback.estimate_text(text)
        return len(self.tokenizer.encode(text))

    def estimate_item(self, item: LinkItem) -> int:
        if self.tokenizer is None:
            return self.fallback.estimate_item(item)
        return len(self.tokenizer.encode(f"{item.title} {item.url}")) + self.item_overhead


def create_token_estimator(kind: str) -> TokenEstimator:
    """Create the estimator named in settings."""
    if kind == "tiktoken":
        return TiktokenEstimator()
    if kind == "heuristic":
        return HeuristicTokenEstimator()
    raise ValueError(f"Unsupported token estimator: {kind}")


def truncate_text(text: str | None, max_length: int) -> str:
    """Truncate text to max_length characters, marking the cut with an ellipsis."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS


def strip_tags(html: str) -> str:
    """Crude markup removal used when no readable text was extracted."""
    return _WHITESPACE_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def extract_relevant_content(readable: ReadableContent | None, html: str | None, limits: ContextLimits) -> str:
    """Pick the most relevant text of a page within the profile's length limit."""
    if limits.summarize_content and readable and readable.excerpt:
        return truncate_text(readable.excerpt, limits.max_page_content_length)

    if readable and readable.text_content:
        return truncate_text(readable.text_content, limits.max_page_content_length)

    if html:
        return truncate_text(strip_tags(html), limits.max_page_content_length)

    return ""


def _truncate_items(items: list[LinkItem], max_items: int) -> list[LinkItem]:
    return [
        LinkItem(title=truncate_text(item.title, ITEM_TITLE_LIMIT), url=truncate_text(item.url, ITEM_URL_LIMIT))
        for item in items[:max_items]
    ]


def build_optimized_context(
    page_capture: PageCapture,
    browsing_context: BrowsingContext | None,
    is_vision_model: bool,
    limits: ContextLimits = DEFAULT_LIMITS,
    estimator: TokenEstimator | None = None,
) -> OptimizedContext:
    """Assemble the bounded page/history/bookmark payload and its token estimate.

    Args:
        page_capture: Raw capture of the current page
        browsing_context: Recent history and bookmarks, if available
        is_vision_model: Whether the selected model accepts images
        limits: Profile controlling truncation and inclusion
        estimator: Token estimator (defaults to the character heuristic)

    Returns:
        The optimized context
    """
    estimator = estimator or HeuristicTokenEstimator()

    minimize_text = bool(is_vision_model and limits.prefer_screenshot_for_vision and page_capture.screenshot)

    if minimize_text:
        # Ellipsis included in the cap
        content = truncate_text(page_capture.title, VISION_TITLE_LIMIT - len(ELLIPSIS))
    else:
        content = extract_relevant_content(page_capture.readable, page_capture.html, limits)

    page = PageContent(
        url=page_capture.url,
        title=page_capture.title,
        content=content,
        selected_text=truncate_text(page_capture.selected_text, SELECTED_TEXT_LIMIT) or None,
    )

    page_text = "".join(part or "" for part in (page.url, page.title, page.content, page.selected_text))
    token_estimate = estimator.estimate_text(page_text)

    history: list[LinkItem] | None = None
    if limits.include_history and limits.max_history_items > 0 and browsing_context and browsing_context.history:
        history = _truncate_items(browsing_context.history, limits.max_history_items)
        token_estimate += sum(estimator.estimate_item(item) for item in history)

    bookmarks: list[LinkItem] | None = None
    if (
        limits.include_bookmarks
        and limits.max_bookmark_items > 0
        and browsing_context
        and browsing_context.bookmarks
    ):
        bookmarks = _truncate_items(browsing_context.bookmarks, limits.max_bookmark_items)
        token_estimate += sum(estimator.estimate_item(item) for item in bookmarks)

    logger.debug(
        f"Built context: content={len(page.content)} chars, history={len(history or [])}, "
        f"bookmarks={len(bookmarks or [])}, ~{token_estimate} tokens"
    )

    return OptimizedContext(
        page=page,
        browsing_history=history,
        bookmarks=bookmarks,
        screenshot=page_capture.screenshot if minimize_text else None,
        token_estimate=token_estimate,
    )


def get_recommended_limits(is_vision_model: bool, has_screenshot: bool, use_case: UseCase = "normal") -> ContextLimits:
    """Select a context profile for the model and use case.

    Vision requests are the most likely to fail against local engines, so they
    get the smallest payloads.
    """
    if is_vision_model and has_screenshot:
        return MINIMAL_LIMITS.model_copy(
            update={
                "max_page_content_length": 100,
                "max_history_items": 0,
                "include_history": False,
                "include_bookmarks": False,
                "prefer_screenshot_for_vision": True,
            }
        )

    if is_vision_model:
        return MINIMAL_LIMITS.model_copy(
            update={
                "max_page_content_length": 300,
                "max_history_items": 0,
                "include_history": False,
                "include_bookmarks": False,
            }
        )

    if use_case == "quick-answer":
        return MINIMAL_LIMITS

    if use_case == "deep-analysis":
        return FULL_LIMITS.model_copy(update={"max_page_content_length": 3000})

    return DEFAULT_LIMITS


def format_context_prompt(context: OptimizedContext) -> str:
    """Render context as the text block prepended to the first user message."""
    parts: list[str] = []
    page = context.page

    parts.append("## Current Page Context")
    if page.url:
        parts.append(f"URL: {page.url}")
    if page.title:
        parts.append(f"Page Title: {page.title}")
    if page.selected_text:
        parts.append(f"\nSelected Text:\n{page.selected_text}")
    if page.content:
        parts.append(f"\nPage Content:\n{truncate_text(page.content, PROMPT_CONTENT_LIMIT)}")

    if context.browsing_history:
        parts.append("\n## Recent Browsing History")
        parts.append(
            "\n".join(
                f"- {item.title or 'Untitled'} ({item.url})" for item in context.browsing_history[:PROMPT_ITEM_LIMIT]
            )
        )

    if context.bookmarks:
        parts.append("\n## Bookmarks")
        parts.append(
            "\n".join(f"- {item.title or 'Untitled'} ({item.url})" for item in context.bookmarks[:PROMPT_ITEM_LIMIT])
        )

    return "\n".join(parts)
