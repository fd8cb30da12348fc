import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from folio.models.epub_container import EPUBContainer, TOCPoint

from .epub_url_helper import strip_anchor

logger = logging.getLogger(__name__)


class SpineTOCEntry(NamedTuple):
    """A spine entry paired with the TOC entry that lists it, if any"""

    manifest_id: str
    href: str
    toc_id: Optional[str]


class EPUBNavigationService:
    """
    Resolves relationships between the table of contents, manifest and spine.

    The TOC does not necessarily list every item of the manifest, only the
    TOC-worthy ones, so the spine is the authoritative ordering and sections
    without their own TOC entry are labeled by the nearest preceding one.
    """

    def __init__(self, container: EPUBContainer):
        self.container = container

    def resolve_adjacent_section(
        self,
        current_href: str,
        offset: int,
        load_href: Callable[[str], bool],
    ) -> Optional[str]:
        """
        Load the spine item adjacent to the given href and return its owning TOC id

        Args:
            current_href: href of the section currently displayed
            offset: signed spine offset (0 just reloads the current section)
            load_href: asks the rendering surface to load an href; False if refused

        Returns:
            The TOC id of the owning entry, or None when there is no adjacent
            section, the container is inconsistent, the load was refused or no
            TOC entry precedes the target. The load is issued before the TOC
            lookup, so navigation can succeed even when None is returned.
        """
        container = self.container
        base_href = strip_anchor(current_href)

        # the first manifest item in manifest order wins when hrefs collide
        items = [
            item
            for item in container.manifest.values()
            if strip_anchor(item.href) == base_href
        ]
        logger.debug(f"Found items for href {current_href}: {items}")
        if not items:
            logger.debug(f"No manifest item found for href: {current_href}")
            return None
        item = items[0]

        index = container.spine_index(item.id, last=True)
        if index is None:
            logger.debug(f"No spine index found for item id: {item.id}")
            return None

        target_index = index + offset
        if target_index < 0 or target_index >= len(container.spine):
            logger.debug(
                f"Offset {offset} at index {index} is at the edge of the spine "
                f"bounds: {len(container.spine)}"
            )
            return None

        target_idref = container.spine[target_index].idref
        target_item = container.manifest_item(target_idref)
        if target_item is None:
            logger.debug(f"No target manifest item for spine idref: {target_idref}")
            return None

        logger.debug(
            f"Loading spine index {target_index} (offset {offset}) href: {target_item.href}"
        )
        if not load_href(target_item.href):
            logger.debug(f"Unable to load adjacent href: {target_item.href}")
            return None

        return self._owning_toc_id(target_idref)

    def owning_toc_id(self, spine_index: int) -> Optional[str]:
        """Owning TOC id for a spine position, without loading anything."""
        if spine_index < 0 or spine_index >= len(self.container.spine):
            return None
        return self._owning_toc_id(self.container.spine[spine_index].idref)

    def _owning_toc_id(self, target_idref: str) -> Optional[str]:
        spine_toc = self.build_spine_toc()

        spine_position = next(
            (i for i, entry in enumerate(spine_toc) if entry.manifest_id == target_idref),
            None,
        )
        if spine_position is None:
            logger.debug(f"Unable to locate spine entry for idref: {target_idref}")
            return None

        for entry in reversed(spine_toc[: spine_position + 1]):
            if entry.toc_id is not None:
                return entry.toc_id

        logger.debug(f"No preceding TOC entry for spine idref: {target_idref}")
        return None

    def build_toc_href_map(self) -> Dict[str, str]:
        """Map of anchor-stripped TOC hrefs to TOC ids (first point in TOC order wins)."""
        toc_hrefs: Dict[str, str] = {}
        for point in self.container.all_toc_points():
            if point.content:
                toc_hrefs.setdefault(strip_anchor(point.content), point.id)
        return toc_hrefs

    def build_spine_toc(self) -> List[SpineTOCEntry]:
        """Spine entries in reading order, skipping idrefs missing from the manifest."""
        toc_hrefs = self.build_toc_href_map()
        entries = []
        for spine_item in self.container.spine:
            item = self.container.manifest_item(spine_item.idref)
            if item is None:
                continue
            base_href = strip_anchor(item.href)
            entries.append(
                SpineTOCEntry(spine_item.idref, base_href, toc_hrefs.get(base_href))
            )
        return entries

    def href_for_toc_entry(self, toc_id: str) -> Optional[str]:
        point = self.container.toc_point(toc_id)
        if point is None:
            logger.debug(f"No TOC entry found for id: {toc_id}")
            return None
        if not point.content:
            logger.debug(f"TOC entry {toc_id} has no content href")
            return None
        return point.content

    def get_navigation_tree(self) -> Dict[str, Any]:
        """
        Get the hierarchical navigation structure for the sidebar
        Returns full table of contents with nested structure
        """
        tree = self._process_toc_points(self.container.toc)
        return {
            "navigation": tree,
            "flat_navigation": self._flatten_navigation_tree(tree),
            "spine_length": len(self.container.spine),
            "has_toc": bool(self.container.toc),
        }

    def _process_toc_points(self, points, level=1) -> List[Dict[str, Any]]:
        """
        Recursively process table of contents points
        """
        return [
            {
                "id": point.id,
                "title": point.label,
                "href": point.content,
                "level": level,
                "children": self._process_toc_points(point.children, level + 1),
                "spine_positions": self._find_spine_positions(point),
            }
            for point in points
        ]

    def _flatten_navigation_tree(
        self, nav_items: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        flat_items: List[Dict[str, Any]] = []

        def walk(items: List[Dict[str, Any]], parent_id: Optional[str]) -> None:
            for item in items:
                flat_items.append(
                    {
                        "id": item["id"],
                        "title": item["title"],
                        "href": item["href"],
                        "level": item["level"],
                        "parent_id": parent_id,
                        "order": len(flat_items),
                        "spine_positions": item["spine_positions"],
                        "child_count": len(item["children"]),
                    }
                )
                walk(item["children"], item["id"])

        walk(nav_items, None)
        return flat_items

    def _find_spine_positions(self, point: TOCPoint) -> List[int]:
        if not point.content:
            return []

        base_href = strip_anchor(point.content)
        positions = []
        for idx, spine_item in enumerate(self.container.spine):
            item = self.container.manifest_item(spine_item.idref)
            if item is not None and strip_anchor(item.href) == base_href:
                positions.append(idx)
        return positions
