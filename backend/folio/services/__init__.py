"""
Services Package

This package contains the navigation and pagination services behind the
reader: resolving sections across the TOC/manifest/spine, driving the
rendering surface, classifying touch gestures, and persisting reader settings.
"""

from .gesture_service import GestureService
from .pagination_service import PaginationService
from .reader_errors import (
    NoSurfaceError,
    ReaderError,
    SectionNotReadyError,
    SurfaceCommunicationError,
)
from .reader_session import ReaderSession, ReaderSessionRegistry
from .reader_settings_service import ReaderSettingsService
from .rendering_surface import RenderingSurface

__all__ = [
    "GestureService",
    "PaginationService",
    "ReaderError",
    "SurfaceCommunicationError",
    "NoSurfaceError",
    "SectionNotReadyError",
    "ReaderSession",
    "ReaderSessionRegistry",
    "ReaderSettingsService",
    "RenderingSurface",
]
