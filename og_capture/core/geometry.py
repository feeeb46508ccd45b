"""Bounding box math for cropping preview screenshots."""

import math
from dataclasses import asdict, dataclass
from typing import Iterable, Mapping, Optional

from og_capture.api.config import CLIP_PADDING_PX


@dataclass(frozen=True)
class BoundingBox:
    """Page-space box of a single DOM node."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_mapping(cls, box: Optional[Mapping[str, float]]) -> Optional["BoundingBox"]:
        """Build a box from a browser ``{x, y, width, height}`` mapping."""
        if box is None:
            return None
        try:
            return cls(
                x=float(box["x"]),
                y=float(box["y"]),
                width=float(box["width"]),
                height=float(box["height"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True)
class Clip:
    """Integer clip rectangle passed to the screenshot call."""

    x: int
    y: int
    width: int
    height: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int


def is_usable_box(box: Optional[BoundingBox]) -> bool:
    """Check that a box has finite coordinates and a non-empty area."""
    return (
        box is not None
        and math.isfinite(box.x)
        and math.isfinite(box.y)
        and math.isfinite(box.width)
        and math.isfinite(box.height)
        and box.width > 0
        and box.height > 0
    )


def compute_clip(
    boxes: Iterable[Optional[BoundingBox]],
    viewport: Optional[Viewport] = None,
    padding: int = CLIP_PADDING_PX,
) -> Clip:
    """
    Compute the padded union of the usable boxes, clamped to the viewport.

    Args:
        boxes: Child boxes; unusable entries are ignored
        viewport: Page viewport, if known
        padding: Margin added on every side in CSS pixels

    Returns:
        Clip with strictly positive width and height. With no usable box the
        clip covers the whole viewport (or 1x1 without a viewport).
    """
    usable = [box for box in boxes if is_usable_box(box)]

    if not usable:
        return Clip(
            x=0,
            y=0,
            width=max(viewport.width, 1) if viewport else 1,
            height=max(viewport.height, 1) if viewport else 1,
        )

    min_x = min(box.x for box in usable)
    min_y = min(box.y for box in usable)
    max_x = max(box.x + box.width for box in usable)
    max_y = max(box.y + box.height for box in usable)

    x = max(math.floor(min_x - padding), 0)
    y = max(math.floor(min_y - padding), 0)
    width = math.ceil(max_x - min_x + padding * 2)
    height = math.ceil(max_y - min_y + padding * 2)

    if viewport is not None:
        width = min(width, max(viewport.width - x, 1))
        height = min(height, max(viewport.height - y, 1))

    return Clip(x=x, y=y, width=max(width, 1), height=max(height, 1))
