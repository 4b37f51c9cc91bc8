import math
from dataclasses import dataclass


@dataclass(frozen=True)
class BoundingBox:
    """
    A map rectangle in degrees: (left, top) and (right, bottom) corners.
    No ordering between the corners is assumed.
    """
    left: float
    top: float
    right: float
    bottom: float

    def __post_init__(self):
        for name in ("left", "top", "right", "bottom"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, (int, float)):
                raise TypeError(f"{name} must be a number, got {v!r}")
            if not math.isfinite(v):
                raise ValueError(f"{name} must be finite, got {v!r}")
            object.__setattr__(self, name, float(v))

    @property
    def mid_x(self) -> float:
        return (self.left + self.right) / 2

    @property
    def mid_y(self) -> float:
        return (self.top + self.bottom) / 2

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.left, self.top, self.right, self.bottom)


def split_box(box: BoundingBox) -> list[BoundingBox]:
    """Quadrant split. Children come back as NW, NE, SW, SE and share the midlines."""
    mx, my = box.mid_x, box.mid_y
    return [
        BoundingBox(box.left, box.top, mx, my),
        BoundingBox(mx, box.top, box.right, my),
        BoundingBox(box.left, my, mx, box.bottom),
        BoundingBox(mx, my, box.right, box.bottom),
    ]
