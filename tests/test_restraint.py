"""Tests for restraint records, factories and reference normalization."""

import numpy as np
import jax
import jax.numpy as jnp
import pytest

from jaxrestraints.restraint import (
    Restraint, RestraintKind, Potential, FC_DEFAULT, T_DEFAULT,
    bond_restraint, angle_restraint, dihedral_restraint, wall_restraint,
    normalize_angle, normalize_dihedral,
)


@pytest.mark.parametrize("degrees, expected", [
    (90.0, 90.0),
    (450.0, 90.0),
    (270.0, 90.0),
    (-30.0, 30.0),
    (180.0, 180.0),
    (360.0, 0.0),
    (720.0, 0.0),
    (1000.0, 80.0),
])
def test_normalize_angle(degrees, expected):
    assert normalize_angle(degrees) == pytest.approx(expected, abs=1e-12)


@pytest.mark.parametrize("degrees, expected", [
    (30.0, 30.0),
    (-690.0, 30.0),
    (270.0, -90.0),
    (-270.0, 90.0),
    (180.0, 180.0),
    (-180.0, 180.0),
    (725.0, 5.0),
    (-725.0, -5.0),
])
def test_normalize_dihedral(degrees, expected):
    assert normalize_dihedral(degrees) == pytest.approx(expected, abs=1e-12)


def test_angle_reference_idempotent():
    ref = float(angle_restraint(0, 1, 2, 90.0).reference[0])
    assert float(angle_restraint(0, 1, 2, 450.0).reference[0]) == ref
    assert float(angle_restraint(0, 1, 2, 270.0).reference[0]) == ref
    assert abs(ref - np.pi / 2) < 1e-12


def test_dihedral_reference_normalized():
    ref = float(dihedral_restraint(0, 1, 2, 3, 30.0).reference[0])
    assert float(dihedral_restraint(0, 1, 2, 3, -690.0).reference[0]) == ref
    assert abs(ref - np.pi / 6) < 1e-12


@pytest.mark.parametrize("degrees", np.linspace(-1000.0, 1000.0, 41))
def test_reference_ranges(degrees):
    theta0 = float(angle_restraint(0, 1, 2, degrees).reference[0])
    phi0 = float(dihedral_restraint(0, 1, 2, 3, degrees).reference[0])
    assert 0.0 <= theta0 <= np.pi + 1e-12
    assert -np.pi < phi0 <= np.pi + 1e-12


def test_bond_restraint_fields():
    r = bond_restraint(3, 7, 1.5)
    assert r.kind == RestraintKind.BOND
    assert r.potential == Potential.HARMONIC
    assert r.n_atoms == 2
    assert list(np.array(r.atoms)) == [3, 7]
    assert r.atoms.dtype == jnp.int32
    assert float(r.reference[0]) == 1.5
    assert float(r.force_constants[0]) == FC_DEFAULT
    assert float(bond_restraint(0, 1, 1.5, k=0.5).force_constants[0]) == 0.5


def test_logfermi_restraint_fields():
    r = angle_restraint(0, 1, 2, 120.0, logfermi=True, beta=10.0)
    assert r.potential == Potential.LOGFERMI
    assert list(np.array(r.force_constants)) == [T_DEFAULT, 10.0]
    r = dihedral_restraint(0, 1, 2, 3, 60.0, logfermi=True, temperature=500.0, beta=2.0)
    assert list(np.array(r.force_constants)) == [500.0, 2.0]


def test_logfermi_requires_beta():
    with pytest.raises(ValueError, match="beta"):
        bond_restraint(0, 1, 1.5, logfermi=True)


def test_wall_all_atoms():
    r = wall_restraint(5, 2.0, 0.3, 4.0)
    assert r.kind == RestraintKind.WALL
    assert r.n_atoms == 5
    assert list(np.array(r.atoms)) == [0, 1, 2, 3, 4]
    assert list(np.array(r.reference)) == [2.0, 2.0, 2.0]
    assert list(np.array(r.force_constants)) == [0.3, 4.0]


def test_wall_ellipsoid_logfermi():
    r = wall_restraint(3, [1.0, 2.0, 3.0], 300.0, 6.0, logfermi=True)
    assert r.kind == RestraintKind.WALL_FERMI
    assert r.potential == Potential.LOGFERMI
    assert list(np.array(r.reference)) == [1.0, 2.0, 3.0]
    assert list(np.array(r.force_constants)) == [300.0, 6.0]


def test_wall_mask_selects_atoms():
    r = wall_restraint(np.array([True, False, True, True, False]), 2.0, 1.0, 2.0)
    assert r.n_atoms == 3
    assert list(np.array(r.atoms)) == [0, 2, 3]


def test_wall_bad_radii():
    with pytest.raises(ValueError, match="semi-axes"):
        wall_restraint(4, [1.0, 2.0], 1.0, 2.0)


def test_empty_restraint():
    r = Restraint()
    assert r.is_empty
    assert r.atoms is None
    assert r.describe() == ""
    assert str(r) == ""


def test_factory_returns_fresh_record():
    """Each factory call builds a new record; nothing leaks between calls."""
    wall = wall_restraint(6, 2.0, 1.0, 2.0)
    bond = bond_restraint(0, 1, 1.2)
    assert wall.n_atoms == 6
    assert bond.n_atoms == 2
    assert bond.reference.shape == (1,)


def test_describe_bond():
    assert bond_restraint(0, 1, 1.5).describe() == (
        "constraint: distance atoms: 0,1 d=    1.50 k= 0.01000"
    )


def test_describe_angle_and_dihedral_in_degrees():
    assert "deg= 90.00" in angle_restraint(0, 1, 2, 450.0).describe()
    text = str(dihedral_restraint(4, 6, 8, 14, -690.0, k=0.5))
    assert text.startswith("constraint: dihedral atoms: 4,6,8,14")
    assert "deg= 30.00" in text
    assert "k= 0.50000" in text


def test_describe_logfermi():
    text = bond_restraint(0, 1, 2.0, logfermi=True, beta=5.0).describe()
    assert "T=  298.15" in text
    assert "beta=" in text


def test_describe_wall():
    assert wall_restraint(5, 2.0, 1.0, 4.0).describe() == (
        "constraint: wall atoms: 5 radii=     2.00000     2.00000     2.00000"
        " k= 1.00000 exp= 4.00"
    )


def test_restraint_is_pytree():
    r = dihedral_restraint(0, 1, 2, 3, 45.0)
    leaves, treedef = jax.tree_util.tree_flatten(r)
    assert len(leaves) == 3
    rebuilt = jax.tree_util.tree_unflatten(treedef, leaves)
    assert rebuilt.kind == RestraintKind.DIHEDRAL
    assert rebuilt.n_atoms == 4
    assert float(rebuilt.reference[0]) == float(r.reference[0])
