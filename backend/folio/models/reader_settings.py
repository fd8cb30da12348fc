from typing import Literal

from pydantic import BaseModel, Field


class ReaderSettings(BaseModel):
    """
    User-adjustable reader preferences.

    page_scale is the font scale last applied by the surface (1.0 == 100%);
    default_scale is what "actual size" resets it to.
    """

    smooth_scrolling: bool = True
    leading_tap_advances: bool = False
    hmargin: int = Field(default=40, ge=0)
    vmargin: int = Field(default=20, ge=0)
    page_scale: float = Field(default=2.0, gt=0)
    default_scale: float = Field(default=2.0, gt=0)
    min_scale: float = Field(default=0.05, gt=0)
    max_scale: float = Field(default=100.0, gt=0)
    tap_window_ms: int = Field(default=200, gt=0)
    surface_timeout: float = Field(default=10.0, gt=0)  # seconds per round trip
    # "hidden" when the host cannot drive native scrolling, "visible" otherwise
    overflow_x: Literal["hidden", "visible"] = "hidden"
