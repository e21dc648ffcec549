"""Standard materials library.

Pre-configured :class:`~pyfsi.materials.base.Material` instances for the
benchmark problems shipped with the package.

Usage::

    from pyfsi.materials import flap_rubber
    print(flap_rubber.youngs_modulus)  # 4e6 Pa
"""

from pyfsi.materials.base import Material

# ------------------------------------------------------------------
# Solids
# ------------------------------------------------------------------

flap_rubber = Material(
    name="flap_rubber",
    youngs_modulus=4.0e6,          # Pa
    poissons_ratio=0.3,
    density=3000.0,                # kg/m³
)

steel = Material(
    name="steel",
    youngs_modulus=210e9,
    poissons_ratio=0.3,
    density=7850.0,
)

cook_membrane = Material(
    name="cook_membrane",
    youngs_modulus=240.565e6,
    poissons_ratio=0.4,
    density=1.0,
)

# mesh-motion pseudo material; stiffness is scaled per cell anyway
pseudo_solid = Material(
    name="pseudo_solid",
    youngs_modulus=1.0,
    poissons_ratio=0.3,
    density=1.0,
)

# ------------------------------------------------------------------
# Fluids
# ------------------------------------------------------------------

unit_fluid = Material(
    name="unit_fluid",
    density=1.0,
    kinematic_viscosity=1.0,
)

water = Material(
    name="water",
    density=1000.0,
    kinematic_viscosity=1.0e-6,    # m²/s
)
