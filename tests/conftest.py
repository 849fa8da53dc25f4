"""Shared test fixtures for jaxrestraints tests.

Provides a well-conditioned four-atom torsion geometry (plus spectator
atoms), randomly perturbed copies of it, alanine dipeptide coordinates
for realistic molecules, and a central finite-difference gradient helper.
"""

import numpy as np
import pytest

import jax
jax.config.update("jax_enable_x64", True)
import jax.numpy as jnp

# Atoms 0-3 span a torsion of about +54 deg with both bond angles near
# 110 deg; atoms 4 and 5 are spectators that no restraint touches.
BASE_GEOMETRY = np.array([
    [-0.5, 1.3, 0.0],
    [0.0, 0.0, 0.0],
    [1.5, 0.0, 0.0],
    [2.0, 0.8, 1.1],
    [3.1, -1.2, 0.4],
    [-1.7, -0.6, 2.2],
], dtype=np.float64)


def perturbed_geometry(seed, scale=0.1):
    """BASE_GEOMETRY with Gaussian noise; stays far from degenerate angles."""
    rng = np.random.default_rng(seed)
    return BASE_GEOMETRY + scale * rng.normal(size=BASE_GEOMETRY.shape)


@pytest.fixture
def positions():
    """Unperturbed base geometry as JAX array (6, 3)."""
    return jnp.array(BASE_GEOMETRY)


@pytest.fixture(params=range(5))
def random_positions(request):
    """Five perturbed copies of the base geometry."""
    return jnp.array(perturbed_geometry(request.param))


@pytest.fixture(scope="session")
def finite_diff_grad():
    """Central finite difference gradient of energy_fn(positions, restraint)."""

    def _finite_diff_grad(energy_fn, positions, restraint, h=1e-5):
        pos_np = np.array(positions)
        fd = np.zeros_like(pos_np)
        for i in range(pos_np.shape[0]):
            for j in range(3):
                p_plus = pos_np.copy()
                p_minus = pos_np.copy()
                p_plus[i, j] += h
                p_minus[i, j] -= h
                fd[i, j] = (
                    float(energy_fn(jnp.array(p_plus), restraint))
                    - float(energy_fn(jnp.array(p_minus), restraint))
                ) / (2 * h)
        return fd

    return _finite_diff_grad


@pytest.fixture(scope="session")
def aldp_testsystem():
    """Alanine dipeptide vacuum test system (cached for session)."""
    from openmmtools import testsystems
    return testsystems.AlanineDipeptideVacuum(constraints=None)


@pytest.fixture(scope="session")
def aldp_topology(aldp_testsystem):
    """OpenMM Topology for alanine dipeptide."""
    return aldp_testsystem.topology


@pytest.fixture(scope="session")
def aldp_positions(aldp_testsystem):
    """Alanine dipeptide positions as numpy (22, 3) in nm."""
    from openmm import unit
    pos = aldp_testsystem.positions.value_in_unit(unit.nanometer)
    return np.array(pos, dtype=np.float64)
