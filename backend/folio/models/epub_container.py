"""
EPUB Container Models

Immutable view of an EPUB package as the navigation layer sees it:
- Manifest: every content item keyed by id (href + media type)
- Spine: the authoritative linear reading order, as manifest id references
- Table of contents: a plain ownership tree of labeled navigation points

Containers are built once (see EPUBContainerBuilder) and only read afterwards.
"""

from typing import Iterator

from pydantic import BaseModel, ConfigDict


class ManifestItem(BaseModel):
    """A single content item listed in the package manifest"""

    model_config = ConfigDict(frozen=True)

    id: str
    href: str  # container-relative path, may carry a #fragment
    media_type: str = "application/xhtml+xml"


class SpineItem(BaseModel):
    """A reference from the reading order to a manifest item"""

    model_config = ConfigDict(frozen=True)

    idref: str
    linear: bool = True


class TOCPoint(BaseModel):
    """
    A labeled navigation point in the table of contents.

    The tree is owned top-down: a point exclusively owns its children and
    keeps no reference to its parent.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    content: str | None = None  # href, possibly anchor-qualified
    children: tuple["TOCPoint", ...] = ()

    def walk(self) -> Iterator["TOCPoint"]:
        """Yield this point and all of its descendants in pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()


TOCPoint.model_rebuild()


class EPUBContainer(BaseModel):
    """
    Read-only lookup surface over the manifest, spine and table of contents.

    Manifest iteration order is insertion order and is used as the defined
    tie-break whenever several manifest items share an href.
    """

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    manifest: dict[str, ManifestItem] = {}
    spine: tuple[SpineItem, ...] = ()
    toc: tuple[TOCPoint, ...] = ()  # children of the synthetic root

    def manifest_item(self, item_id: str) -> ManifestItem | None:
        return self.manifest.get(item_id)

    def spine_index(self, idref: str, last: bool = False) -> int | None:
        """
        Locate the spine position referencing the given manifest id.

        Spines may list the same idref more than once, so callers pick the
        first or the last match depending on the direction they resolve.
        """
        positions = range(len(self.spine))
        if last:
            positions = reversed(positions)
        for index in positions:
            if self.spine[index].idref == idref:
                return index
        return None

    def all_toc_points(self) -> list[TOCPoint]:
        """Flattened pre-order traversal of the whole TOC tree."""
        points: list[TOCPoint] = []
        for point in self.toc:
            points.extend(point.walk())
        return points

    def toc_point(self, toc_id: str) -> TOCPoint | None:
        for point in self.all_toc_points():
            if point.id == toc_id:
                return point
        return None

    def first_toc_point(self) -> TOCPoint | None:
        return self.toc[0] if self.toc else None

    def spine_hrefs(self) -> list[str]:
        """The reading order as hrefs, skipping idrefs missing from the manifest."""
        hrefs = []
        for spine_item in self.spine:
            item = self.manifest.get(spine_item.idref)
            if item is not None:
                hrefs.append(item.href)
        return hrefs

    def media_type_for_href(self, href: str) -> str | None:
        for item in self.manifest.values():
            if item.href == href:
                return item.media_type
        return None
