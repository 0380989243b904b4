"""Contain-fit geometry for gallery variants."""

import math
from collections.abc import Mapping
from typing import NamedTuple

from core.models.policy import VariantSpec


class TargetSize(NamedTuple):
    width: int
    height: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def plan_contain_size(
    source_width: int,
    source_height: int,
    max_width: int,
    max_height: int,
) -> TargetSize:
    """Resolve one contain-style target size from configured max dimensions.

    Rules:
    - `0` width or height means "auto" for that axis.
    - Both `0` means keep source size.
    - Never upscale above the source size.
    """
    if source_width < 1 or source_height < 1:
        return TargetSize(1, 1)

    if max_width <= 0 and max_height <= 0:
        return TargetSize(source_width, source_height)

    if max_width <= 0:
        scale = min(1.0, max_height / source_height)
    elif max_height <= 0:
        scale = min(1.0, max_width / source_width)
    else:
        scale = min(1.0, max_width / source_width, max_height / source_height)

    target_width = max(1, _round_half_up(source_width * scale))
    target_height = max(1, _round_half_up(source_height * scale))

    # Rounding can overshoot a bound by one pixel.
    if max_width > 0:
        target_width = min(target_width, max_width)
    if max_height > 0:
        target_height = min(target_height, max_height)

    return TargetSize(target_width, target_height)


def plan_variants(
    source_width: int,
    source_height: int,
    specs: Mapping[str, VariantSpec],
) -> dict[str, TargetSize]:
    """Plan every configured variant against the decoded source size."""
    return {
        key: plan_contain_size(source_width, source_height, spec.width, spec.height)
        for key, spec in specs.items()
    }
