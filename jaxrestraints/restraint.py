"""Restraint records and the factory functions that build them.

A Restraint describes one biasing term: its kind (bond, angle, dihedral,
wall, ...), the potential form applied to the deviation, the atoms it acts
on, reference value(s) and force constant(s). Records are immutable; every
factory call returns a fresh, fully populated record.
"""

from dataclasses import dataclass, fields
from enum import IntEnum

import jax
import jax.numpy as jnp
import numpy as np

from jaxrestraints.utils import DEG

# Default force constant (Hartree per length^2 or per rad^2)
FC_DEFAULT = 0.01
# Default temperature of log-fermi potentials in K
T_DEFAULT = 298.15


class RestraintKind(IntEnum):
    """Geometric feature a restraint acts on."""
    NONE = 0
    BOND = 1
    ANGLE = 2
    DIHEDRAL = 3
    WALL = 4
    WALL_FERMI = 5
    BOX = 6
    BOX_FERMI = 7


class Potential(IntEnum):
    """Scalar response applied to the deviation from the reference."""
    HARMONIC = 1
    LOGFERMI = 2


def _register_pytree(cls, aux_field_names=()):
    """Register a frozen dataclass as a JAX pytree.

    Array fields become tree children; fields in aux_field_names become
    static auxiliary data (must be hashable).
    """
    child_names = [f.name for f in fields(cls) if f.name not in aux_field_names]

    def flatten(obj):
        children = [getattr(obj, name) for name in child_names]
        aux = tuple(getattr(obj, name) for name in aux_field_names)
        return children, aux

    def unflatten(aux, children):
        kwargs = dict(zip(child_names, children))
        kwargs.update(zip(aux_field_names, aux))
        return cls(**kwargs)

    jax.tree_util.register_pytree_node(cls, flatten, unflatten)


@dataclass(frozen=True, eq=False)
class Restraint:
    """A single restraint term.

    The default-constructed record is the empty restraint (kind NONE),
    which evaluates to zero energy.

    Args:
        kind: Restraint kind (static).
        potential: Potential form (static). Orthogonal to kind; only
            meaningful for bond, angle and dihedral restraints.
        n_atoms: Number of participating atoms (static). 2/3/4 for
            bond/angle/dihedral, the number of confined atoms for walls.
        atoms: Atom indices, shape (n_atoms,) int32.
        reference: Reference values, float64. Bond: (distance,).
            Angle: (theta0,) in [0, pi]. Dihedral: (phi0,) in (-pi, pi].
            Wall: the three semi-axes (a, b, c).
        force_constants: Force constants, float64. Harmonic: (k,).
            Log-fermi: (temperature, beta). Polynomial wall: (k, alpha).
    """
    kind: RestraintKind = RestraintKind.NONE
    potential: Potential = Potential.HARMONIC
    n_atoms: int = 0
    atoms: jax.Array | None = None
    reference: jax.Array | None = None
    force_constants: jax.Array | None = None

    @property
    def is_empty(self) -> bool:
        return self.kind == RestraintKind.NONE

    def describe(self) -> str:
        """Return a one-line human-readable summary (empty for NONE)."""
        if self.is_empty:
            return ""
        ref = [] if self.reference is None else [float(x) for x in self.reference]
        fc = [] if self.force_constants is None else [float(x) for x in self.force_constants]
        atoms = [] if self.atoms is None else [int(x) for x in self.atoms]
        atom_list = ",".join(str(a) for a in atoms)

        if self.kind == RestraintKind.BOND and ref and fc:
            art = "distance"
            values = f"d={ref[0]:8.2f} {_format_fc(self.potential, fc)}"
        elif self.kind == RestraintKind.ANGLE and ref and fc:
            art = "angle"
            values = f"deg={ref[0] * DEG:6.2f} {_format_fc(self.potential, fc)}"
        elif self.kind == RestraintKind.DIHEDRAL and ref and fc:
            art = "dihedral"
            values = f"deg={ref[0] * DEG:6.2f} {_format_fc(self.potential, fc)}"
        elif self.kind in (RestraintKind.WALL, RestraintKind.WALL_FERMI) and len(ref) >= 3 and len(fc) >= 2:
            art = self.kind.name.lower()
            atom_list = f"{self.n_atoms}"
            radii = "".join(f"{r:12.5f}" for r in ref[:3])
            values = f"radii={radii} k={fc[0]:8.5f} exp={fc[1]:5.2f}"
        else:
            art = getattr(self.kind, "name", str(self.kind)).lower()
            values = ""
        return f"constraint: {art} atoms: {atom_list} {values}".rstrip()

    def __str__(self) -> str:
        return self.describe()


_register_pytree(Restraint, aux_field_names=("kind", "potential", "n_atoms"))


def _format_fc(potential, fc):
    if potential == Potential.LOGFERMI and len(fc) >= 2:
        return f"T={fc[0]:8.2f} beta={fc[1]:8.3f}"
    return f"k={fc[0]:8.5f}"


def normalize_angle(degrees: float) -> float:
    """Fold an angle in degrees into [0, 180].

    The magnitude is reduced modulo 360, then values above 180 are
    reflected to 360 - value. E.g. 450 -> 90, 270 -> 90, -30 -> 30.
    """
    d = abs(float(degrees))
    if d > 360.0:
        d = d % 360.0
    if d > 180.0:
        d = 360.0 - d
    return d


def normalize_dihedral(degrees: float) -> float:
    """Fold a signed dihedral in degrees into (-180, 180].

    The magnitude is reduced modulo 360 keeping the sign, then shifted by
    a full turn if it falls outside the half-open interval.
    E.g. -690 -> 30, 270 -> -90, -180 -> 180.
    """
    d = float(degrees)
    if abs(d) > 360.0:
        d = np.copysign(abs(d) % 360.0, d)
    if d > 180.0:
        d = d - 360.0
    if d <= -180.0:
        d = d + 360.0
    return float(d)


def _simple_restraint(kind, atoms, reference, k, logfermi, temperature, beta):
    """Build a fixed-arity restraint (bond, angle, dihedral)."""
    if logfermi:
        if beta is None:
            raise ValueError(
                f"{kind.name.lower()} restraint with a log-fermi potential "
                f"needs a steepness: pass beta=..."
            )
        potential = Potential.LOGFERMI
        force_constants = (temperature, beta)
    else:
        potential = Potential.HARMONIC
        force_constants = (k,)
    return Restraint(
        kind=kind,
        potential=potential,
        n_atoms=len(atoms),
        atoms=jnp.asarray(atoms, dtype=jnp.int32),
        reference=jnp.asarray([reference], dtype=jnp.float64),
        force_constants=jnp.asarray(force_constants, dtype=jnp.float64),
    )


def bond_restraint(i, j, distance, k=FC_DEFAULT, *, logfermi=False,
                   temperature=T_DEFAULT, beta=None) -> Restraint:
    """Restrain the distance between atoms i and j.

    Args:
        i, j: Atom indices.
        distance: Reference distance.
        k: Harmonic force constant.
        logfermi: Use the log-fermi potential instead of the harmonic one.
        temperature: Log-fermi temperature in K.
        beta: Log-fermi steepness. Required when logfermi is True.

    Returns:
        Bond Restraint.
    """
    return _simple_restraint(
        RestraintKind.BOND, (i, j), distance, k, logfermi, temperature, beta,
    )


def angle_restraint(i, j, k_atom, degrees, k=FC_DEFAULT, *, logfermi=False,
                    temperature=T_DEFAULT, beta=None) -> Restraint:
    """Restrain the angle i-j-k_atom (vertex j).

    The reference is normalized with normalize_angle and stored in radians.
    Other arguments as for bond_restraint.
    """
    theta0 = np.radians(normalize_angle(degrees))
    return _simple_restraint(
        RestraintKind.ANGLE, (i, j, k_atom), theta0, k, logfermi, temperature, beta,
    )


def dihedral_restraint(i, j, k_atom, l, degrees, k=FC_DEFAULT, *, logfermi=False,
                       temperature=T_DEFAULT, beta=None) -> Restraint:
    """Restrain the signed dihedral i-j-k_atom-l.

    The reference is normalized with normalize_dihedral and stored in
    radians. Other arguments as for bond_restraint.
    """
    phi0 = np.radians(normalize_dihedral(degrees))
    return _simple_restraint(
        RestraintKind.DIHEDRAL, (i, j, k_atom, l), phi0, k, logfermi, temperature, beta,
    )


def wall_restraint(atoms, radii, k, alpha, logfermi=False) -> Restraint:
    """Confine atoms inside an ellipsoidal (or spherical) cavity.

    Args:
        atoms: Either an int N (all N atoms of the system) or a boolean
            mask of shape (N,) selecting the confined atoms.
        radii: Semi-axes of the cavity, a scalar for a sphere or a
            sequence of 3 for an ellipsoid centered at the origin.
        k: Polynomial wall: force constant. Log-fermi wall: temperature in K.
        alpha: Polynomial wall: exponent. Log-fermi wall: steepness beta.
        logfermi: Build a log-fermi wall instead of a polynomial one.

    Returns:
        Wall Restraint.

    Raises:
        ValueError: If radii has neither 1 nor 3 entries.
    """
    if isinstance(atoms, (int, np.integer)):
        mask = np.ones(int(atoms), dtype=bool)
    else:
        mask = np.asarray(atoms, dtype=bool)
    indices = np.flatnonzero(mask).astype(np.int32)

    radii = np.atleast_1d(np.asarray(radii, dtype=np.float64))
    if radii.shape not in ((1,), (3,)):
        raise ValueError(
            f"wall radii must be a scalar or 3 semi-axes, got shape {radii.shape}."
        )
    radii = np.broadcast_to(radii, (3,))

    return Restraint(
        kind=RestraintKind.WALL_FERMI if logfermi else RestraintKind.WALL,
        potential=Potential.LOGFERMI if logfermi else Potential.HARMONIC,
        n_atoms=int(indices.shape[0]),
        atoms=jnp.asarray(indices),
        reference=jnp.asarray(radii, dtype=jnp.float64),
        force_constants=jnp.asarray([k, alpha], dtype=jnp.float64),
    )
