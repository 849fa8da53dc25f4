"""Unit constants and geometry analysis helpers.

Internal units follow the electronic-structure convention of the
calculators these restraints are added to: Hartree for energies, Bohr for
lengths, radians for angles, Kelvin for temperatures.
"""

import jax
import jax.numpy as jnp

# Boltzmann constant in Hartree/K
KB = 3.166808578545117e-6

# ---------------------------------------------------------------------------
# Unit conversion constants.
#
# Usage:
#   r_bohr = 1.5 / BOHR            # 1.5 A in Bohr
#   e_kcal = e_hartree * AUTOKCAL  # Hartree to kcal/mol
#   theta_deg = theta * DEG        # radians to degrees
# ---------------------------------------------------------------------------
BOHR = 0.52917726          # 1 Bohr in A
AUTOKCAL = 627.509541      # 1 Hartree in kcal/mol
DEG = 180.0 / jnp.pi       # 1 rad in degrees


def dihedral_angle(positions: jax.Array, indices: jax.Array) -> jax.Array:
    """Compute dihedral angles for given atom index quadruplets.

    Uses the atan2 formula, which is well conditioned for all torsions, and
    the same sign convention as dihedral restraints (IUPAC, matches
    mdtraj). Works on single configurations or batches.

    Args:
        positions: Atom coordinates, shape (n_atoms, 3) or (n_frames, n_atoms, 3).
        indices: Atom index quadruplets, shape (n_dihedrals, 4) int.

    Returns:
        Dihedral angles in radians, shape (n_dihedrals,) or (n_frames, n_dihedrals).
    """
    positions = jnp.asarray(positions)
    indices = jnp.asarray(indices)
    single = positions.ndim == 2
    if single:
        positions = positions[jnp.newaxis]  # (1, n_atoms, 3)

    # Gather atom positions: (n_frames, n_dihedrals, 3)
    p0 = positions[:, indices[:, 0]]
    p1 = positions[:, indices[:, 1]]
    p2 = positions[:, indices[:, 2]]
    p3 = positions[:, indices[:, 3]]

    b1 = p1 - p0
    b2 = p2 - p1
    b3 = p3 - p2

    n1 = jnp.cross(b1, b2)
    n2 = jnp.cross(b2, b3)
    b2_hat = b2 / jnp.sqrt(jnp.sum(b2**2, axis=-1, keepdims=True) + 1e-30)

    # phi = atan2((n1 x n2) . b2_hat, n1 . n2)
    x = jnp.sum(n1 * n2, axis=-1)
    y = jnp.sum(jnp.cross(n1, n2) * b2_hat, axis=-1)
    angles = jnp.arctan2(y, x)

    if single:
        return angles[0]
    return angles
