"""
URL Helper utilities for EPUB navigation
Centralizes href normalization and the epub:/// URLs the rendering surface loads
"""

import urllib.parse

CONTENT_URL_SCHEME = "epub"


class EPUBURLHelper:
    """Centralized href handling for EPUB content items"""

    @staticmethod
    def strip_anchor(href: str) -> str:
        """
        Trim the fragment anchor off an href

        Manifest hrefs and TOC content hrefs may or may not carry a #fragment,
        so every href comparison goes through this first.

        Args:
            href: Container-relative href, e.g. "text/ch01.xhtml#p3"

        Returns:
            The href up to the first "#", or the input unchanged
        """
        return href.split("#", 1)[0]

    @staticmethod
    def content_url(href: str) -> str:
        """
        Build the URL the rendering surface loads for a content item

        Args:
            href: Container-relative href

        Returns:
            URL such as "epub:///text/ch01.xhtml"
        """
        return f"{CONTENT_URL_SCHEME}:///" + urllib.parse.quote(href, safe="/#")

    @staticmethod
    def href_from_url_path(path: str) -> str:
        """
        Convert the path of a loaded content URL back into a container href

        The path of epub:///file always starts with "/", which is trimmed.
        """
        if not path:
            return ""

        try:
            decoded = urllib.parse.unquote(path)
        except Exception:
            # If decoding fails, use it as-is
            decoded = path

        return decoded.strip("/")


strip_anchor = EPUBURLHelper.strip_anchor
