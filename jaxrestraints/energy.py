"""Restraint energies with analytic Cartesian gradients.

All evaluators are pure: (positions, restraint) -> (energy, gradient), with
energy a scalar in Hartree and gradient dense with the shape of positions
(zero outside the restrained atoms). Compatible with jax.jit and jax.vmap;
the restraint kind is static, so dispatch happens at trace time.

A restraint that cannot be evaluated (empty, malformed, or a kind without
an implementation such as BOX) contributes zero energy and zero gradient.
"""

import warnings

import jax
import jax.numpy as jnp

from jaxrestraints.geometry import angle_and_derivatives, dihedral_and_derivatives, rlen
from jaxrestraints.restraint import Potential, Restraint, RestraintKind
from jaxrestraints.utils import KB


class RestraintWarning(UserWarning):
    """Issued when a malformed restraint is skipped during evaluation."""


def _check_x64():
    """Raise if JAX float64 is not enabled."""
    if not jax.config.jax_enable_x64:
        raise RuntimeError(
            "jaxrestraints requires float64. Call jax.config.update('jax_enable_x64', True) "
            "before importing jaxrestraints or using its functions."
        )


def _check_positions(positions):
    """Raise if positions is not an (n_atoms, 3) array."""
    if positions.ndim != 2 or positions.shape[-1] != 3:
        raise ValueError(
            f"positions has shape {positions.shape}, expected (n_atoms, 3) (x, y, z)."
        )


def _prepare(positions):
    _check_x64()
    positions = jnp.asarray(positions)
    _check_positions(positions)
    return positions


def _zero(positions):
    return jnp.zeros((), dtype=positions.dtype), jnp.zeros_like(positions)


def _kind_name(kind):
    return kind.name.lower() if isinstance(kind, RestraintKind) else f"kind {kind}"


def _usable(restraint: Restraint, n_atoms=None, n_reference=1, n_fc=None) -> bool:
    """Whether restraint holds everything an evaluator needs.

    The empty restraint is skipped silently; anything else that is
    incomplete is skipped with a RestraintWarning.
    """
    if restraint.is_empty:
        return False
    if n_fc is None:
        n_fc = 2 if restraint.potential == Potential.LOGFERMI else 1
    problem = None
    if restraint.atoms is None or restraint.reference is None or restraint.force_constants is None:
        problem = "missing atoms, reference or force constants"
    elif n_atoms is not None and restraint.n_atoms != n_atoms:
        problem = f"needs {n_atoms} atoms, has n_atoms={restraint.n_atoms}"
    elif restraint.atoms.shape[0] != restraint.n_atoms:
        problem = f"{restraint.atoms.shape[0]} atom indices for n_atoms={restraint.n_atoms}"
    elif restraint.reference.shape[0] < n_reference:
        problem = f"needs {n_reference} reference values, has {restraint.reference.shape[0]}"
    elif restraint.force_constants.shape[0] < n_fc:
        problem = f"needs {n_fc} force constants, has {restraint.force_constants.shape[0]}"
    if problem is not None:
        warnings.warn(
            f"Skipping malformed {_kind_name(restraint.kind)} restraint ({problem}); "
            f"it contributes zero energy and gradient.",
            RestraintWarning, stacklevel=3,
        )
        return False
    return True


# ---------------------------------------------------------------------------
# Potential forms
# ---------------------------------------------------------------------------

def harmonic(x, k):
    """Harmonic potential E = 0.5 * k * x^2.

    Returns:
        (E, dE/dx).
    """
    return 0.5 * k * x**2, k * x


def logfermi(x, temperature, beta):
    """Log-fermi potential E = kB * T * ln(1 + exp(beta * x)).

    Flat for x << 0 and asymptotically linear with slope kB*T*beta for
    x >> 0. Evaluated with logaddexp/sigmoid so large beta*x cannot
    overflow.

    Returns:
        (E, dE/dx), dE/dx = kB*T*beta * exp(beta*x) / (1 + exp(beta*x)).
    """
    kt = KB * temperature
    return kt * jnp.logaddexp(0.0, beta * x), kt * beta * jax.nn.sigmoid(beta * x)


def apply_potential(x, restraint: Restraint):
    """Apply the restraint's potential form to the deviation x."""
    fc = restraint.force_constants
    if restraint.potential == Potential.LOGFERMI:
        return logfermi(x, fc[0], fc[1])
    return harmonic(x, fc[0])


# ---------------------------------------------------------------------------
# Per-kind evaluators
# ---------------------------------------------------------------------------

def bond_restraint_energy(positions: jax.Array, restraint: Restraint):
    """Restraint on the distance between two atoms.

    x = |r_i - r_j| - d0; dE/dr_i = dE/dx * (r_i - r_j) / |r_i - r_j| = -dE/dr_j.

    Args:
        positions: Atom coordinates, shape (n_atoms, 3).
        restraint: Bond restraint.

    Returns:
        (energy, gradient).
    """
    positions = _prepare(positions)
    if not _usable(restraint, n_atoms=2):
        return _zero(positions)
    i, j = restraint.atoms[0], restraint.atoms[1]
    dr = positions[i] - positions[j]
    dist = rlen(dr)
    energy, dedx = apply_potential(dist - restraint.reference[0], restraint)
    g = dedx * dr / dist
    grad = jnp.zeros_like(positions).at[i].add(g).at[j].add(-g)
    return energy, grad


def angle_restraint_energy(positions: jax.Array, restraint: Restraint):
    """Restraint on the angle between three atoms A-B-C (vertex B).

    Args:
        positions: Atom coordinates, shape (n_atoms, 3).
        restraint: Angle restraint, reference in radians.

    Returns:
        (energy, gradient).
    """
    positions = _prepare(positions)
    if not _usable(restraint, n_atoms=3):
        return _zero(positions)
    i, j, k = restraint.atoms[0], restraint.atoms[1], restraint.atoms[2]
    theta, dada, dadb, dadc = angle_and_derivatives(positions[i], positions[j], positions[k])
    energy, dedx = apply_potential(theta - restraint.reference[0], restraint)
    grad = (
        jnp.zeros_like(positions)
        .at[i].add(dedx * dada)
        .at[j].add(dedx * dadb)
        .at[k].add(dedx * dadc)
    )
    return energy, grad


def dihedral_restraint_energy(positions: jax.Array, restraint: Restraint):
    """Restraint on the signed dihedral A-B-C-D.

    The deviation is taken directly as phi - phi0 without wrapping, so the
    potential is discontinuous where phi crosses +-pi.

    Args:
        positions: Atom coordinates, shape (n_atoms, 3).
        restraint: Dihedral restraint, reference in radians in (-pi, pi].

    Returns:
        (energy, gradient).
    """
    positions = _prepare(positions)
    if not _usable(restraint, n_atoms=4):
        return _zero(positions)
    i, j, k, l = (restraint.atoms[n] for n in range(4))
    phi, dpda, dpdb, dpdc, dpdd = dihedral_and_derivatives(
        positions[i], positions[j], positions[k], positions[l],
    )
    energy, dedx = apply_potential(phi - restraint.reference[0], restraint)
    grad = (
        jnp.zeros_like(positions)
        .at[i].add(dedx * dpda)
        .at[j].add(dedx * dpdb)
        .at[k].add(dedx * dpdc)
        .at[l].add(dedx * dpdd)
    )
    return energy, grad


def wall_restraint_energy(positions: jax.Array, restraint: Restraint):
    """Confine atoms inside an ellipsoid with semi-axes (a, b, c).

    Polynomial wall (WALL), per atom with d = (x/a)^2 + (y/b)^2 + (z/c)^2:

        E = k * d^alpha

    Log-fermi wall (WALL_FERMI): coordinates are scaled by ref/axis with
    ref = max(a, b, c), so the ellipsoid maps onto a sphere of radius ref;
    with r the norm of the scaled position:

        E = kB * T * ln(1 + exp(beta * (r - ref)))

    BOX and BOX_FERMI are accepted and contribute nothing.

    Args:
        positions: Atom coordinates, shape (n_atoms, 3).
        restraint: Wall restraint.

    Returns:
        (energy, gradient).
    """
    positions = _prepare(positions)
    if restraint.kind not in (RestraintKind.WALL, RestraintKind.WALL_FERMI):
        return _zero(positions)
    if not _usable(restraint, n_reference=3, n_fc=2):
        return _zero(positions)

    idx = restraint.atoms
    xyz = positions[idx]  # (n_confined, 3)
    axes = restraint.reference[:3]
    p1, p2 = restraint.force_constants[0], restraint.force_constants[1]

    if restraint.kind == RestraintKind.WALL:
        k, alpha = p1, p2
        dist = jnp.sum((xyz / axes) ** 2, axis=-1)
        energy = jnp.sum(k * dist**alpha)
        ddist = k * alpha * dist ** (alpha - 1.0)
        g = ddist[:, None] * 2.0 * xyz / axes**2
    else:
        temperature, beta = p1, p2
        ref = jnp.max(axes)
        w = ref / axes
        r = w * xyz
        dist = rlen(r)
        e_atom, dedx = logfermi(dist - ref, temperature, beta)
        energy = jnp.sum(e_atom)
        # Offset keeps the gradient finite for an atom at the origin
        g = dedx[:, None] * (r * w) / (dist[:, None] + 1e-14)

    grad = jnp.zeros_like(positions).at[idx].add(g)
    return energy, grad


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_EVALUATORS = {
    RestraintKind.BOND: bond_restraint_energy,
    RestraintKind.ANGLE: angle_restraint_energy,
    RestraintKind.DIHEDRAL: dihedral_restraint_energy,
    RestraintKind.WALL: wall_restraint_energy,
    RestraintKind.WALL_FERMI: wall_restraint_energy,
}


def restraint_energy_and_gradient(positions: jax.Array, restraint: Restraint):
    """Evaluate one restraint.

    Selects the evaluator by restraint.kind. Empty restraints, BOX,
    BOX_FERMI and unknown kinds return zero energy and zero gradient.

    Args:
        positions: Atom coordinates, shape (n_atoms, 3).
        restraint: Restraint to evaluate.

    Returns:
        (energy, gradient): scalar energy in Hartree and dE/dpositions with
        shape (n_atoms, 3).

    Note:
        Restraints are independent; to bias a calculation with several,
        sum their contributions::

            for r in restraints:
                e, g = restraint_energy_and_gradient(pos, r)
                energy, grad = energy + e, grad + g
    """
    positions = _prepare(positions)
    evaluator = _EVALUATORS.get(restraint.kind)
    if evaluator is None:
        return _zero(positions)
    return evaluator(positions, restraint)


def restraint_energy(positions: jax.Array, restraint: Restraint) -> jax.Array:
    """Energy of one restraint.

    jax.grad(restraint_energy) differentiates the energy expression
    automatically and reproduces the analytic gradient of
    restraint_energy_and_gradient away from degenerate geometries.
    """
    return restraint_energy_and_gradient(positions, restraint)[0]


def measure(positions: jax.Array, restraint: Restraint):
    """Current value of the restrained coordinate.

    Returns:
        Distance for bonds, angle in radians for angles, signed dihedral in
        radians for dihedrals. None for walls, box kinds and restraints
        that cannot be evaluated.
    """
    positions = _prepare(positions)
    kind = restraint.kind
    if kind == RestraintKind.BOND and _usable(restraint, n_atoms=2):
        i, j = restraint.atoms[0], restraint.atoms[1]
        return rlen(positions[i] - positions[j])
    if kind == RestraintKind.ANGLE and _usable(restraint, n_atoms=3):
        pts = positions[restraint.atoms]
        return angle_and_derivatives(pts[0], pts[1], pts[2])[0]
    if kind == RestraintKind.DIHEDRAL and _usable(restraint, n_atoms=4):
        pts = positions[restraint.atoms]
        return dihedral_and_derivatives(pts[0], pts[1], pts[2], pts[3])[0]
    return None
