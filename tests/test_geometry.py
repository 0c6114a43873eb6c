# tests/test_geometry.py
import numpy as np
import pytest

from peptidefold.exceptions import GeometryError
from peptidefold.geometry import angle_difference, bond_angle, compute_position, dihedral, normalize, wrap_angle

P = np.array([0.0, 100.0, 0.0])
A = np.array([0.0, 0.0, 0.0])
B = np.array([150.0, 0.0, 0.0])


# -----------------------
# compute_position
# -----------------------


def test_compute_position_is_deterministic():
  first = compute_position(B, B - A, A - P, 147.0, 116.2, -57.0)
  for _ in range(10):
    again = compute_position(B, B - A, A - P, 147.0, 116.2, -57.0)
    np.testing.assert_allclose(again, first, rtol=0, atol=1e-9)


@pytest.mark.parametrize("torsion", [-150.0, -90.0, -30.0, 0.0, 45.0, 120.0, 180.0])
def test_compute_position_honours_length_angle_and_torsion(torsion):
  d = compute_position(B, B - A, A - P, 147.0, 110.0, torsion)
  assert np.linalg.norm(d - B) == pytest.approx(147.0, rel=1e-9)
  assert bond_angle(A, B, d) == pytest.approx(110.0, abs=1e-6)
  assert angle_difference(dihedral(P, A, B, d), torsion) == pytest.approx(0.0, abs=1e-6)


def test_compute_position_zero_torsion_is_cis():
  d = compute_position(B, B - A, A - P, 150.0, 110.0, 0.0)
  # same side of the A-B axis as P
  assert d[1] > 0
  assert d[2] == pytest.approx(0.0, abs=1e-9)


def test_compute_position_parallel_vectors_raise():
  with pytest.raises(GeometryError):
    compute_position(B, np.array([1.0, 0.0, 0.0]), np.array([-3.0, 0.0, 0.0]), 150.0, 110.0, 0.0)


def test_compute_position_zero_vector_raises():
  with pytest.raises(GeometryError):
    compute_position(B, np.zeros(3), np.array([0.0, 1.0, 0.0]), 150.0, 110.0, 0.0)


# -----------------------
# helpers
# -----------------------


def test_normalize():
  np.testing.assert_allclose(normalize([3.0, 0.0, 4.0]), [0.6, 0.0, 0.8])
  with pytest.raises(GeometryError):
    normalize([0.0, 0.0, 1e-12])


def test_dihedral_trans_is_positive_180():
  assert dihedral([0, 1, 0], [0, 0, 0], [1, 0, 0], [1, -1, 0]) == pytest.approx(180.0)


def test_dihedral_sign():
  assert dihedral([0, 1, 0], [0, 0, 0], [1, 0, 0], [1, 0, 1]) == pytest.approx(90.0)
  assert dihedral([0, 1, 0], [0, 0, 0], [1, 0, 0], [1, 0, -1]) == pytest.approx(-90.0)


def test_dihedral_collinear_raises():
  with pytest.raises(GeometryError):
    dihedral([0, 0, 0], [1, 0, 0], [2, 0, 0], [2, 1, 0])


def test_wrap_angle_and_difference():
  assert wrap_angle(190.0) == pytest.approx(-170.0)
  assert wrap_angle(-190.0) == pytest.approx(170.0)
  assert wrap_angle(180.0) == pytest.approx(-180.0)
  assert wrap_angle(45.0) == pytest.approx(45.0)
  assert angle_difference(-170.0, 170.0) == pytest.approx(20.0)
  assert angle_difference(170.0, -170.0) == pytest.approx(-20.0)
