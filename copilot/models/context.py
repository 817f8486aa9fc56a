"""Page and browsing context models."""

from typing import Literal

from pydantic import BaseModel, Field

UseCase = Literal["quick-answer", "deep-analysis", "normal"]


class ContextLimits(BaseModel):
    """Truncation and inclusion limits applied when assembling context."""

    # Character limits
    max_page_content_length: int
    max_history_items: int
    max_bookmark_items: int

    include_history: bool
    include_bookmarks: bool

    # Vision models get the screenshot and only the page title as text
    prefer_screenshot_for_vision: bool
    # Use the readability excerpt instead of the full text
    summarize_content: bool

    class Config:
        frozen = True


DEFAULT_LIMITS = ContextLimits(
    max_page_content_length=2000,
    max_history_items=5,
    max_bookmark_items=3,
    include_history=True,
    include_bookmarks=False,
    prefer_screenshot_for_vision=True,
    summarize_content=True,
)

MINIMAL_LIMITS = ContextLimits(
    max_page_content_length=500,
    max_history_items=0,
    max_bookmark_items=0,
    include_history=False,
    include_bookmarks=False,
    prefer_screenshot_for_vision=True,
    summarize_content=True,
)

FULL_LIMITS = ContextLimits(
    max_page_content_length=5000,
    max_history_items=10,
    max_bookmark_items=10,
    include_history=True,
    include_bookmarks=True,
    prefer_screenshot_for_vision=False,
    summarize_content=False,
)


class ReadableContent(BaseModel):
    """Readability extraction of a page."""

    title: str | None = None
    excerpt: str | None = None
    text_content: str | None = None

    class Config:
        extra = "ignore"


class PageCapture(BaseModel):
    """Raw capture of the current page."""

    url: str | None = None
    title: str | None = None
    html: str | None = None
    readable: ReadableContent | None = None
    screenshot: str | None = None
    selected_text: str | None = None

    class Config:
        extra = "ignore"


class LinkItem(BaseModel):
    """A history entry or bookmark reduced to what the model sees."""

    title: str = ""
    url: str = ""

    class Config:
        extra = "ignore"


class BrowsingContext(BaseModel):
    """Recent browsing history and saved bookmarks."""

    history: list[LinkItem] = Field(default_factory=list)
    bookmarks: list[LinkItem] = Field(default_factory=list)


class PageContext(BaseModel):
    """Everything the UI captured to accompany a prompt."""

    page: PageCapture
    browsing: BrowsingContext | None = None


class PageContent(BaseModel):
    """Bounded page context sent to the model."""

    url: str | None = None
    title: str | None = None
    content: str = ""
    selected_text: str | None = None


class OptimizedContext(BaseModel):
    """Token-bounded context payload with its advisory token estimate."""

    page: PageContent
    browsing_history: list[LinkItem] | None = None
    bookmarks: list[LinkItem] | None = None
    screenshot: str | None = None
    token_estimate: int = 0
