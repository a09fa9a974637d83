"""Zoom and scroll-offset calculation for zoom-to-word mode.

WHY: In zoom mode the viewport follows the spoken word, enlarged as far
as the frame and the zoom limits allow, without scrolling past the edges
of the page.

HOW: A pure function. The zoom is the smaller of the two frame/target
ratios clamped to [min_zoom, max_zoom]; the offsets centre the target in
the zoomed frame and, when container bounds are known, are clamped to
[0, container - frame / zoom].

RULES:
- No hidden state: identical arguments give identical results
- target_width and target_height must be positive
- When the clamp range is negative (content smaller than the zoomed
  frame) the offset is pinned to 0
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from readalong_sync.core.ir import Rect, Viewport


@dataclass(frozen=True)
class ViewportFit:
    zoom: float
    offset_x: float
    offset_y: float


def _clamp_offset(offset: float, container: Optional[float], frame: float, zoom: float) -> float:
    if container is None:
        return offset
    return max(0.0, min(offset, container - frame / zoom))


def fit(
    frame_width: float,
    frame_height: float,
    min_zoom: float,
    max_zoom: float,
    target_x: float,
    target_y: float,
    target_width: float,
    target_height: float,
    container_width: Optional[float] = None,
    container_height: Optional[float] = None,
) -> ViewportFit:
    """Compute the zoom and offsets that best show a target rectangle.

    Args:
        frame_width, frame_height: Visible frame size in screen units.
        min_zoom, max_zoom: Zoom limits, min_zoom <= max_zoom.
        target_x, target_y, target_width, target_height: The word box in
            content coordinates.
        container_width, container_height: Full content size; None leaves
            that dimension unclamped.

    Returns:
        ViewportFit with zoom and the top-left content offset to scroll to.

    Raises:
        ValueError: On a non-positive target size or inverted zoom limits.
    """
    if target_width <= 0 or target_height <= 0:
        raise ValueError("Target rectangle must have a positive size")
    if min_zoom > max_zoom:
        raise ValueError(
            "min_zoom ({}) must not exceed max_zoom ({})".format(min_zoom, max_zoom)
        )

    ratio = min(frame_width / target_width, frame_height / target_height)
    zoom = max(min_zoom, min(ratio, max_zoom))

    offset_x = target_x - (frame_width / zoom - target_width) / 2
    offset_y = target_y - (frame_height / zoom - target_height) / 2

    return ViewportFit(
        zoom=zoom,
        offset_x=_clamp_offset(offset_x, container_width, frame_width, zoom),
        offset_y=_clamp_offset(offset_y, container_height, frame_height, zoom),
    )


def fit_viewport(viewport: Viewport, target: Rect) -> ViewportFit:
    """fit() for the Viewport/Rect pair used by the zoom capability."""
    return fit(
        viewport.frame_width,
        viewport.frame_height,
        viewport.min_zoom,
        viewport.max_zoom,
        target.x,
        target.y,
        target.width,
        target.height,
        viewport.container_width,
        viewport.container_height,
    )
