# EPUB Navigation Components
from .epub_container_builder import EPUBContainerBuilder
from .epub_navigation_service import EPUBNavigationService, SpineTOCEntry
from .epub_url_helper import EPUBURLHelper, strip_anchor

__all__ = [
    "EPUBContainerBuilder",
    "EPUBNavigationService",
    "SpineTOCEntry",
    "EPUBURLHelper",
    "strip_anchor",
]
