"""Materials: properties and their assignment to mesh cells."""

from pyfsi.materials.base import Material, MaterialMap, assign, uniform
from pyfsi.materials.library import (
    flap_rubber,
    steel,
    cook_membrane,
    pseudo_solid,
    unit_fluid,
    water,
)

__all__ = [
    "Material",
    "MaterialMap",
    "assign",
    "uniform",
    "flap_rubber",
    "steel",
    "cook_membrane",
    "pseudo_solid",
    "unit_fluid",
    "water",
]
