"""Vector primitives and closed-form derivatives of angles and dihedrals.

All functions operate on Cartesian 3-vectors stored in the last axis and
broadcast over any leading axes. They are pure JAX and may be used under
jax.jit and jax.vmap.
"""

import jax
import jax.numpy as jnp

# Angles closer than this to 0 or pi use the degenerate derivative form
DEGENERATE_ANGLE = 1e-6


def rlen(r: jax.Array) -> jax.Array:
    """Euclidean length of r along the last axis."""
    return jnp.sqrt(jnp.sum(r**2, axis=-1))


def dot(r1: jax.Array, r2: jax.Array) -> jax.Array:
    """Scalar product along the last axis."""
    return jnp.sum(r1 * r2, axis=-1)


def cross(r1: jax.Array, r2: jax.Array) -> jax.Array:
    """Vector product along the last axis."""
    return jnp.cross(r1, r2)


def angle_and_derivatives(a: jax.Array, b: jax.Array, c: jax.Array):
    """Compute the angle a-b-c at vertex b and its Cartesian derivatives.

    theta = acos((a-b).(c-b) / (|a-b| |c-b|))

    For nearly collinear input (theta within DEGENERATE_ANGLE of 0 or pi)
    1/sqrt(1 - cos^2) diverges, so the derivatives switch to the bounded
    form sin(acos(r_x / |r|)) / |r'| built from the unit-scaled rays,
    negated near pi. The cosine is clipped into [-1, 1] so round-off on
    collinear points never produces NaN.

    Args:
        a: First point, shape (..., 3).
        b: Vertex, shape (..., 3).
        c: Third point, shape (..., 3).

    Returns:
        (theta, dtheta/da, dtheta/db, dtheta/dc). theta in radians with
        shape (...,); derivatives with shape (..., 3). dtheta/db is always
        -(dtheta/da + dtheta/dc).
    """
    r1 = a - b
    r2 = c - b
    l1 = rlen(r1)[..., None]
    l2 = rlen(r2)[..., None]
    p = dot(r1, r2)[..., None]
    d = jnp.clip(p / (l1 * l2), -1.0, 1.0)
    theta = jnp.arccos(d)

    near_zero = theta < DEGENERATE_ANGLE
    near_pi = (jnp.pi - theta) < DEGENERATE_ANGLE
    degenerate = near_zero | near_pi

    # Regular branch; the denominator is replaced where it would vanish
    one_minus_d2 = jnp.where(degenerate, 1.0, 1.0 - d**2)
    dinv = 1.0 / jnp.sqrt(one_minus_d2)
    denom = l1**2 * l2**2
    dada = -dinv * (r2 * l1 * l2 - p * (l2 / l1) * r1) / denom
    dadc = -dinv * (r1 * l1 * l2 - p * (l1 / l2) * r2) / denom

    # Degenerate branch
    dada_deg = (1.0 / l2) * jnp.sin(jnp.arccos(jnp.clip(r2 / l2, -1.0, 1.0)))
    dadc_deg = (1.0 / l1) * jnp.sin(jnp.arccos(jnp.clip(r1 / l1, -1.0, 1.0)))
    flip = jnp.where(near_pi, -1.0, 1.0)
    dada_deg = flip * dada_deg
    dadc_deg = flip * dadc_deg

    dada = jnp.where(degenerate, dada_deg, dada)
    dadc = jnp.where(degenerate, dadc_deg, dadc)
    dadb = -dada - dadc
    return theta[..., 0], dada, dadb, dadc


def dihedral_and_derivatives(a: jax.Array, b: jax.Array, c: jax.Array, d: jax.Array):
    """Compute the signed dihedral a-b-c-d and its Cartesian derivatives.

    The planes (a, b, c) and (d, c, b) are represented by their normals
    N1 = (a-b) x (c-b) and N2 = (d-c) x (c-b). The unsigned torsion is the
    angle between N1 and N2 (angle_and_derivatives with the origin as the
    vertex) and its sign is -sign(N1 . (d-c)), taking sign(0) = +1. This is
    the IUPAC/biochemistry convention: a right-handed twist is positive.

    The derivatives w.r.t. N1 and N2 are chained through the cross
    products, e.g. d(f(N1))/da = (c-b) x df/dN1. The four atom derivatives
    sum to zero.

    Args:
        a, b, c, d: Atom positions, each shape (..., 3).

    Returns:
        (phi, dphi/da, dphi/db, dphi/dc, dphi/dd). phi in radians in
        [-pi, pi] with shape (...,); derivatives with shape (..., 3).
    """
    rab = a - b
    rcb = c - b
    rdc = d - c
    n1 = cross(rab, rcb)
    n2 = cross(rdc, rcb)
    sig = jnp.where(dot(n1, rdc) < 0.0, 1.0, -1.0)

    phi, dadn1, _, dadn2 = angle_and_derivatives(n1, jnp.zeros_like(n1), n2)

    s = sig[..., None]
    dpda = s * cross(rcb, dadn1)
    dpdb = s * (cross(a - c, dadn1) + cross(rdc, dadn2))
    dpdc = s * (cross(b - a, dadn1) + cross(b - d, dadn2))
    dpdd = s * cross(rcb, dadn2)
    return sig * phi, dpda, dpdb, dpdc, dpdd
