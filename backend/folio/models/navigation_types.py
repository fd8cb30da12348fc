"""
Navigation Type Models

Types exchanged between the pagination engine, the rendering surface and the
reader session: surface replies, per-document navigation state and the raw
touch event schema emitted by the surface.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Replies report any position beyond this as "past the end of the section"
SECTION_END = 1.0


class PaginationStatus(Enum):
    """Lifecycle of the section currently shown by the surface"""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


class SectionBoundary(Enum):
    """Sentinel progress values outside the [0, 1] range"""

    BEFORE_START = "before-start"
    PAST_END = "past-end"


class NavigationReply(BaseModel):
    """
    Structured reply to movePage()/position() from the rendering surface.

    pos < 0 means the move went before the section start, pos > 1.0
    (usually 1.1) means it went past the section end.
    """

    pos: float
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def before_start(self) -> bool:
        return self.pos < 0.0

    @property
    def past_end(self) -> bool:
        return self.pos >= SECTION_END

    @property
    def boundary(self) -> SectionBoundary | None:
        if self.before_start:
            return SectionBoundary.BEFORE_START
        if self.past_end:
            return SectionBoundary.PAST_END
        return None


@dataclass
class NavigationState:
    """
    Mutable reading state for one open document.

    Written only by the PaginationService; everything else reads it.
    """

    current_href: str | None = None
    current_toc_id: str | None = None
    section_progress: float | SectionBoundary = 0.0
    section_width: float = 0.0
    pending_target_position: float | None = None
    scale: float = 2.0
    status: PaginationStatus = PaginationStatus.IDLE
    # Bumped when the document is closed so late replies can be dropped
    epoch: int = 0
    closed: bool = False

    def to_dict(self) -> dict:
        """Convert state to dictionary for API response."""
        progress = self.section_progress
        if isinstance(progress, SectionBoundary):
            progress = progress.value
        return {
            "current_href": self.current_href,
            "current_toc_id": self.current_toc_id,
            "section_progress": progress,
            "section_width": self.section_width,
            "pending_target_position": self.pending_target_position,
            "scale": self.scale,
            "status": self.status.value,
            "closed": self.closed,
        }


class TouchEventKind(Enum):
    """Message names the surface posts to the engine"""

    LOG = "log"
    CLICK = "click"
    TOUCHSTART = "touchstart"
    TOUCHCANCEL = "touchcancel"
    TOUCHLEAVE = "touchleave"
    TOUCHEND = "touchend"

    @classmethod
    def parse(cls, name: str) -> "TouchEventKind | None":
        try:
            return cls(name)
        except ValueError:
            return None


class TouchEvent(BaseModel):
    """Touch/click payload as serialized by the surface user script"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    page_x: float | None = Field(default=None, alias="pageX")
    page_y: float | None = Field(default=None, alias="pageY")
    client_x: float | None = Field(default=None, alias="clientX")
    client_y: float | None = Field(default=None, alias="clientY")
    screen_x: float | None = Field(default=None, alias="screenX")
    screen_y: float | None = Field(default=None, alias="screenY")
    client_width: float | None = Field(default=None, alias="clientWidth")
    client_height: float | None = Field(default=None, alias="clientHeight")
    selection_count: int = Field(default=0, alias="selectionCount")
