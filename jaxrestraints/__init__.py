"""jaxrestraints: Pure JAX restraint potentials with analytic gradients.

Bias molecular geometries during optimization or sampling: hold a distance,
lock an angle or dihedral, or confine atoms inside a cavity. Each restraint
evaluates to an energy and a dense Cartesian gradient (jittable, vmappable).
"""

from jaxrestraints.restraint import (
    Restraint, RestraintKind, Potential,
    bond_restraint, angle_restraint, dihedral_restraint, wall_restraint,
    normalize_angle, normalize_dihedral,
    FC_DEFAULT, T_DEFAULT,
)
from jaxrestraints.energy import (
    harmonic,
    logfermi,
    bond_restraint_energy,
    angle_restraint_energy,
    dihedral_restraint_energy,
    wall_restraint_energy,
    restraint_energy_and_gradient,
    restraint_energy,
    measure,
    RestraintWarning,
)
from jaxrestraints.geometry import angle_and_derivatives, dihedral_and_derivatives
from jaxrestraints.utils import dihedral_angle, KB, BOHR, AUTOKCAL, DEG

__all__ = [
    "Restraint",
    "RestraintKind",
    "Potential",
    "bond_restraint",
    "angle_restraint",
    "dihedral_restraint",
    "wall_restraint",
    "normalize_angle",
    "normalize_dihedral",
    "FC_DEFAULT",
    "T_DEFAULT",
    "harmonic",
    "logfermi",
    "bond_restraint_energy",
    "angle_restraint_energy",
    "dihedral_restraint_energy",
    "wall_restraint_energy",
    "restraint_energy_and_gradient",
    "restraint_energy",
    "measure",
    "RestraintWarning",
    "angle_and_derivatives",
    "dihedral_and_derivatives",
    "dihedral_angle",
    "KB",
    "BOHR",
    "AUTOKCAL",
    "DEG",
]
