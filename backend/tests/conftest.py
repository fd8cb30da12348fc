"""
Shared fixtures for the reader tests.

SimulatedSurface reproduces the column arithmetic of the surface user script
(movePage/position/scaleText) so pagination can be tested without a browser.
"""

import math
from typing import Any

import pytest

from folio.models.epub_container import (
    EPUBContainer,
    ManifestItem,
    SpineItem,
    TOCPoint,
)
from folio.models.navigation_types import NavigationState, PaginationStatus
from folio.services.pagination_service import PaginationService
from folio.services.reader_errors import SurfaceCommunicationError
from folio.services.rendering_surface import RenderingSurface


class SimulatedSurface(RenderingSurface):
    """In-memory surface with a horizontally scrolling column layout"""

    def __init__(self, text_width: float = 1000.0, screen_width: float = 100.0):
        self.text_width = text_width
        self.screen_width = screen_width
        self.scale = 1.0
        self.scroll_x = 0.0
        self.calls: list[tuple[str, tuple]] = []
        self.loads: list[str] = []
        self.accept_loads = True
        self.fail_on: set[str] = set()
        self.raw_replies: dict[str, Any] = {}
        self.closed = False

    @property
    def total_width(self) -> float:
        pages = max(1, math.ceil(self.text_width * self.scale / self.screen_width))
        return pages * self.screen_width

    def _scroll_to(self, pos: float) -> None:
        max_scroll = max(0.0, self.total_width - self.screen_width)
        self.scroll_x = max(0.0, min(max_scroll, pos))

    def _current_position(self, pos: float) -> dict[str, float]:
        total = self.total_width
        if pos < 0.0:
            p = -1.0
        elif pos > total - self.screen_width / 2.0:
            p = 1.1
        else:
            p = max(0.0, min(1.0, pos / total))
        return {"pos": p, "x": self.scroll_x, "y": 0.0, "width": total, "height": 800.0}

    def _move_page(self, direction: int, smooth: bool) -> dict[str, float]:
        screen = self.screen_width
        pos = min(self.total_width, self.scroll_x + screen * direction)
        adjust = math.fmod(pos, screen)  # JavaScript % semantics
        pos -= adjust
        if adjust > screen / 2.0:
            pos += screen
        self._scroll_to(pos)
        return self._current_position(pos)

    async def call(self, function: str, *args: Any) -> Any:
        self.calls.append((function, args))
        if function in self.fail_on:
            raise SurfaceCommunicationError(f"{function} failed")
        if function in self.raw_replies:
            return self.raw_replies[function]

        if function == "movePage":
            return self._move_page(*args)
        if function == "position":
            if args:
                self._scroll_to(self.total_width * args[0])
                return self._move_page(0, False)
            return self._current_position(self.scroll_x)
        if function == "scaleText":
            self.scale = args[0]
            self._scroll_to(self.scroll_x)
            return f"{round(args[0] * 100)}%"
        raise SurfaceCommunicationError(f"Unknown function: {function}")

    def load(self, href: str) -> bool:
        if not self.accept_loads:
            return False
        self.loads.append(href)
        self.scroll_x = 0.0
        return True

    def close(self) -> None:
        self.closed = True

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_container(
    spine_ids: list[str],
    toc_ids: list[str],
    manifest: dict[str, str] | None = None,
) -> EPUBContainer:
    """Container whose manifest maps id -> text/<id>.xhtml, TOC entry toc-<id> per listed id."""
    manifest = manifest or {idref: f"text/{idref}.xhtml" for idref in spine_ids}
    return EPUBContainer(
        title="Test Book",
        manifest={
            item_id: ManifestItem(id=item_id, href=href)
            for item_id, href in manifest.items()
        },
        spine=tuple(SpineItem(idref=idref) for idref in spine_ids),
        toc=tuple(
            TOCPoint(id=f"toc-{idref}", label=idref.upper(), content=manifest[idref])
            for idref in toc_ids
        ),
    )


@pytest.fixture
def partial_toc_container():
    """spine [s0, s1, s2] with TOC entries only for s0 and s2"""
    return make_container(["s0", "s1", "s2"], ["s0", "s2"])


@pytest.fixture
def surface():
    return SimulatedSurface()


@pytest.fixture
def ready_pagination(surface):
    """PaginationService over a surface whose section is already loaded"""
    state = NavigationState(current_href="text/s0.xhtml", scale=1.0)
    state.status = PaginationStatus.READY
    return PaginationService(state, surface=surface)


@pytest.fixture
def container_factory():
    return make_container
