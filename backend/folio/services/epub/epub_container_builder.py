import logging
from pathlib import Path
from typing import Any

from ebooklib import epub

from folio.models.epub_container import (
    EPUBContainer,
    ManifestItem,
    SpineItem,
    TOCPoint,
)

logger = logging.getLogger(__name__)


class EPUBContainerBuilder:
    """Builds the immutable EPUBContainer view from an ebooklib book."""

    def build_from_path(self, file_path: str | Path) -> EPUBContainer:
        """
        Read an EPUB file and build its container view

        Raises:
            FileNotFoundError: if the file does not exist
            ValueError: if the file is not an .epub
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"EPUB {path.name} not found")
        if path.suffix.lower() != ".epub":
            raise ValueError(f"{path.name} is not an EPUB file")

        book = epub.read_epub(str(path))
        return self.build(book)

    def build(self, book) -> EPUBContainer:
        manifest = self._build_manifest(book)
        spine = self._build_spine(book)
        self._used_ids: set[str] = set()
        self._generated = 0
        toc = tuple(self._build_toc(getattr(book, "toc", None) or []))

        missing = [s.idref for s in spine if s.idref not in manifest]
        if missing:
            logger.warning(f"Spine references missing manifest items: {missing}")

        return EPUBContainer(
            title=self._get_title(book),
            manifest=manifest,
            spine=spine,
            toc=toc,
        )

    def _get_title(self, book) -> str | None:
        try:
            metadata = book.get_metadata("DC", "title")
        except Exception:
            return None
        if metadata and isinstance(metadata[0], tuple) and metadata[0]:
            return str(metadata[0][0]).strip() or None
        return None

    def _build_manifest(self, book) -> dict[str, ManifestItem]:
        manifest: dict[str, ManifestItem] = {}
        for item in book.get_items():
            item_id = item.get_id()
            if not item_id:
                continue
            manifest[item_id] = ManifestItem(
                id=item_id,
                href=item.get_name(),
                media_type=getattr(item, "media_type", None) or "",
            )
        return manifest

    def _build_spine(self, book) -> tuple[SpineItem, ...]:
        spine = []
        for entry in book.spine:
            if isinstance(entry, tuple):
                idref, linear = entry[0], entry[1] if len(entry) > 1 else "yes"
            else:
                idref, linear = entry, "yes"
            if hasattr(idref, "get_id"):
                idref = idref.get_id()
            spine.append(
                SpineItem(idref=str(idref), linear=linear not in ("no", False))
            )
        return tuple(spine)

    def _build_toc(self, toc_items: list[Any]) -> list[TOCPoint]:
        """
        Recursively convert ebooklib TOC entries into TOCPoints

        Entries are epub.Link, epub.Section, or (Section | Link, [children]) tuples.
        """
        points = []
        for entry in toc_items:
            children: list[Any] = []
            if isinstance(entry, tuple):
                entry, children = entry[0], list(entry[1])
            if not hasattr(entry, "title"):
                logger.debug(f"Skipping unrecognized TOC entry: {entry!r}")
                continue

            points.append(
                TOCPoint(
                    id=self._unique_id(getattr(entry, "uid", None)),
                    label=str(entry.title or ""),
                    content=getattr(entry, "href", None) or None,
                    children=tuple(self._build_toc(children)),
                )
            )
        return points

    def _unique_id(self, uid: str | None) -> str:
        candidate = uid
        while not candidate or candidate in self._used_ids:
            self._generated += 1
            candidate = f"navpoint-{self._generated}"
        self._used_ids.add(candidate)
        return candidate
