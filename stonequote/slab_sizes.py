"""
Standard slab sizes by material category.

Suppliers sell engineered quartz in jumbo slabs, natural stone in smaller
quarried slabs. Used for slab-count estimates and for apportioning a slab
price over the pieces cut from it.
"""

import enum
import re
from typing import Dict, NamedTuple

from .calculators.money import area_sq_metres


class SlabSize(NamedTuple):
    length_mm: int
    width_mm: int
    name: str

    @property
    def area_sqm(self):
        return area_sq_metres(self.length_mm, self.width_mm)


class SlabCategory(str, enum.Enum):
    ENGINEERED_QUARTZ_JUMBO = "ENGINEERED_QUARTZ_JUMBO"
    ENGINEERED_QUARTZ_STANDARD = "ENGINEERED_QUARTZ_STANDARD"
    NATURAL_STONE = "NATURAL_STONE"
    PORCELAIN = "PORCELAIN"


SLAB_SIZES: Dict[SlabCategory, SlabSize] = {
    SlabCategory.ENGINEERED_QUARTZ_JUMBO: SlabSize(3200, 1600, "Engineered Quartz Jumbo"),
    SlabCategory.ENGINEERED_QUARTZ_STANDARD: SlabSize(3050, 1440, "Engineered Quartz Standard"),
    SlabCategory.NATURAL_STONE: SlabSize(2800, 1600, "Natural Stone"),
    SlabCategory.PORCELAIN: SlabSize(3200, 1600, "Porcelain / Sintered Stone"),
}

DEFAULT_SLAB_CATEGORY = SlabCategory.ENGINEERED_QUARTZ_JUMBO

# Brand and stone names as entered on the material record, lowercased, letters only
CATEGORY_ALIASES: Dict[str, SlabCategory] = {
    "caesarstone": SlabCategory.ENGINEERED_QUARTZ_JUMBO,
    "silestone": SlabCategory.ENGINEERED_QUARTZ_JUMBO,
    "smartstone": SlabCategory.ENGINEERED_QUARTZ_JUMBO,
    "engineeredquartz": SlabCategory.ENGINEERED_QUARTZ_JUMBO,
    "quartz": SlabCategory.ENGINEERED_QUARTZ_JUMBO,
    "essastone": SlabCategory.ENGINEERED_QUARTZ_STANDARD,
    "granite": SlabCategory.NATURAL_STONE,
    "marble": SlabCategory.NATURAL_STONE,
    "quartzite": SlabCategory.NATURAL_STONE,
    "naturalstone": SlabCategory.NATURAL_STONE,
    "porcelain": SlabCategory.PORCELAIN,
    "dekton": SlabCategory.PORCELAIN,
    "neolith": SlabCategory.PORCELAIN,
}

_NON_LETTERS = re.compile(r"[^a-z]")


def normalise_category(category) -> str:
    return _NON_LETTERS.sub("", (category or "").lower())


def resolve_category(category) -> SlabCategory:
    """Map a free-text material category to a slab category. Unknown → jumbo."""
    key = normalise_category(category)
    for member in SlabCategory:
        if key == normalise_category(member.value):
            return member
    return CATEGORY_ALIASES.get(key, DEFAULT_SLAB_CATEGORY)


def get_slab_size(category) -> SlabSize:
    return SLAB_SIZES[resolve_category(category)]
