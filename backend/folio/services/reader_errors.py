"""
Reader error types.

Only failures that must reach the caller are exceptions. Lookup misses, spine
boundaries and corrupt container references are ordinary "no result" outcomes
and are returned as None/False by the services instead.
"""


class ReaderError(Exception):
    """Base class for reader failures reported to the caller"""


class SurfaceCommunicationError(ReaderError):
    """A round trip to the rendering surface failed or returned unusable data"""


class NoSurfaceError(SurfaceCommunicationError):
    """No rendering surface is attached to the document"""

    def __init__(self, message: str = "No book render host installed"):
        super().__init__(message)


class SectionNotReadyError(ReaderError):
    """A pagination command was issued while the section is still loading"""
