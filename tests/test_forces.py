# tests/test_forces.py
import numpy as np
import pytest

from peptidefold.builder import position
from peptidefold.exceptions import ConfigurationError
from peptidefold.forces import BondForceField, CompactingForceField, RamachandranForceField, _dihedral_contributions, omega_deviation
from peptidefold.geometry import angle_difference
from peptidefold.measurements import measure_angles
from peptidefold.peptide import ForceRecords, Peptide, Residue
from peptidefold.ramachandran import DirectoryRamachandranSource, FixedRamachandranDistribution, FixedRamachandranSource

TARGET = (-90.0, -20.0)


@pytest.fixture
def source():
  return FixedRamachandranSource(FixedRamachandranDistribution("ALA", *TARGET))


@pytest.fixture
def dipeptide():
  return Peptide(
    [
      Residue("ALA", nitrogen=[-150, -150, 0], carbon_alpha=[0, -150, 0], carbon=[0, 0, 0]),
      Residue("ALA", nitrogen=[150, 0, 0], carbon_alpha=[150, 0, 150], carbon=[300, 0, 150]),
    ]
  )


def target_distance(peptide, index=1):
  angles = measure_angles(peptide)[index]
  return np.hypot(angle_difference(angles.phi, TARGET[0]), angle_difference(angles.psi, TARGET[1]))


# -----------------------
# ForceRecords
# -----------------------


def test_force_records_accumulate():
  records = ForceRecords(2)
  records.add(0, "CA", np.array([1.0, 0.0, 0.0]))
  records.add(0, "carbon_alpha", np.array([1.0, 2.0, 0.0]))
  records.add(1, 2, np.array([0.0, 0.0, -1.0]))
  np.testing.assert_allclose(records[0].carbon_alpha, [2.0, 2.0, 0.0])
  np.testing.assert_allclose(records[1].carbon, [0.0, 0.0, -1.0])
  np.testing.assert_allclose(records[1].nitrogen, 0.0)

  total = records + records
  np.testing.assert_allclose(total[0].carbon_alpha, [4.0, 4.0, 0.0])
  records.merge(total)
  np.testing.assert_allclose(records[1].carbon, [0.0, 0.0, -3.0])
  with pytest.raises(ValueError):
    records.merge(ForceRecords(3))


# -----------------------
# RamachandranForceField
# -----------------------


def test_omega_deviation():
  assert omega_deviation(-90.0) == pytest.approx(-90.0)
  assert omega_deviation(170.0) == pytest.approx(10.0)
  assert omega_deviation(-170.0) == pytest.approx(-10.0)
  assert omega_deviation(180.0) == pytest.approx(0.0)


def test_literal_two_residue_scenario(dipeptide, source):
  forces = RamachandranForceField(source).compute_forces(dipeptide)
  assert forces[0].carbon_alpha[2] < 0
  assert np.linalg.norm(forces[0].carbon) == pytest.approx(0.0, abs=1e-9)
  assert np.linalg.norm(forces[1].nitrogen) == pytest.approx(0.0, abs=1e-9)
  assert forces[1].carbon_alpha[1] > 0


def test_omega_force_is_unit_magnitude(dipeptide, source):
  forces = RamachandranForceField(source, omega_force=2.0).compute_forces(dipeptide)
  assert np.linalg.norm(forces[0].carbon_alpha) == pytest.approx(2.0)
  assert np.linalg.norm(forces[1].carbon_alpha) == pytest.approx(2.0)


def test_omega_force_restores_planarity(dipeptide, source):
  before = measure_angles(dipeptide)[1].omega
  forces = RamachandranForceField(source, dihedral_force=0.0).compute_forces(dipeptide)
  dipeptide.set_backbone(dipeptide.backbone() + 1.0 * forces.forces)
  after = measure_angles(dipeptide)[1].omega
  assert abs(omega_deviation(after)) < abs(omega_deviation(before))


def test_dihedral_forces_have_no_net_force(source):
  peptide = position(Peptide.from_sequence("AAAAA"))
  forces = RamachandranForceField(source, omega_force=0.0).compute_forces(peptide)
  assert np.abs(forces.forces).max() > 0.5
  np.testing.assert_allclose(forces.forces.reshape(-1, 3).sum(axis=0), 0.0, atol=1e-9)


def test_single_dihedral_term_is_balanced():
  points = [np.array(p, dtype=float) for p in ([-120, 80, 10], [0, 0, 0], [150, 0, 0], [210, 90, -60])]
  contributions = _dihedral_contributions([(0, 0, points[0]), (0, 1, points[1]), (0, 2, points[2]), (1, 0, points[3])], 0.8)
  forces = [force for _, _, force in contributions]
  # the axis atoms carry the counter force
  assert np.linalg.norm(forces[1]) > 0.1 and np.linalg.norm(forces[2]) > 0.1
  np.testing.assert_allclose(np.sum(forces, axis=0), 0.0, atol=1e-9)


def test_dihedral_forces_move_toward_target(source):
  peptide = position(Peptide.from_sequence("AAA"))
  before = target_distance(peptide)
  forces = RamachandranForceField(source, omega_force=0.0).compute_forces(peptide)
  peptide.set_backbone(peptide.backbone() + 0.5 * forces.forces)
  assert target_distance(peptide) < before


def test_chain_ends_only_receive_omega_forces(source):
  peptide = position(Peptide.from_sequence("AAA"))
  forces = RamachandranForceField(source, dihedral_force=0.0).compute_forces(peptide)
  np.testing.assert_allclose(forces.forces[:, [0, 2]], 0.0, atol=1e-12)


def test_threaded_computation_matches_serial(source):
  peptide = position(Peptide.from_sequence("MKVLAGWTEDRS"))
  for residue in peptide.residues[1:]:
    residue.phi, residue.psi = -60.0, -45.0
  for residue in peptide:
    residue.nitrogen = residue.carbon_alpha = residue.carbon = None
  position(peptide)
  serial = RamachandranForceField(source).compute_forces(peptide)
  threaded = RamachandranForceField(source, max_workers=4).compute_forces(peptide)
  np.testing.assert_array_equal(serial.forces, threaded.forces)


def test_thread_pool_is_reused_until_closed(source):
  peptide = position(Peptide.from_sequence("AAAA"))
  with RamachandranForceField(source, max_workers=2) as field:
    first = field.compute_forces(peptide)
    executor = field._executor
    assert executor is not None
    second = field.compute_forces(peptide)
    assert field._executor is executor
    np.testing.assert_array_equal(first.forces, second.forces)
  assert field._executor is None
  # a closed field starts a fresh pool
  field.compute_forces(peptide)
  assert field._executor is not None and field._executor is not executor
  field.close()


def test_serial_field_never_starts_a_pool(source):
  field = RamachandranForceField(source)
  field.compute_forces(position(Peptide.from_sequence("AAA")))
  assert field._executor is None
  field.close()


def test_missing_preference_data_names_residue(tmp_path):
  peptide = position(Peptide.from_sequence("GAG"))
  field = RamachandranForceField(DirectoryRamachandranSource(tmp_path))
  with pytest.raises(ConfigurationError) as excinfo:
    field.compute_forces(peptide)
  assert excinfo.value.residue_index == 1


def test_compute_forces_is_pure(dipeptide, source):
  expected = dipeptide.backbone()
  field = RamachandranForceField(source)
  first = field.compute_forces(dipeptide)
  second = field.compute_forces(dipeptide)
  np.testing.assert_array_equal(first.forces, second.forces)
  np.testing.assert_array_equal(dipeptide.backbone(), expected)


# -----------------------
# Peer force fields
# -----------------------


def test_bond_force_zero_at_ideal_lengths():
  peptide = position(Peptide.from_sequence("AAAA"))
  forces = BondForceField().compute_forces(peptide)
  np.testing.assert_allclose(forces.forces, 0.0, atol=1e-9)


def test_bond_force_restores_stretched_bond():
  peptide = position(Peptide.from_sequence("AA"))
  n = peptide[0].nitrogen
  ca = peptide[0].carbon_alpha
  peptide[0].nitrogen = ca + (n - ca) * 1.5
  forces = BondForceField(stiffness=0.5).compute_forces(peptide)
  towards_ca = ca - peptide[0].nitrogen
  assert np.dot(forces[0].nitrogen, towards_ca) > 0
  assert np.linalg.norm(forces[0].nitrogen) == pytest.approx(0.5 * 147.0 * 0.5)
  np.testing.assert_allclose(forces.forces.reshape(-1, 3).sum(axis=0), 0.0, atol=1e-9)


def test_compacting_force_points_to_centroid():
  peptide = position(Peptide.from_sequence("AAAAAA"))
  forces = CompactingForceField(strength=2.0).compute_forces(peptide)
  centroid = np.mean([r.carbon_alpha for r in peptide], axis=0)
  for residue, record in zip(peptide, forces):
    assert np.linalg.norm(record.carbon_alpha) == pytest.approx(2.0)
    assert np.dot(record.carbon_alpha, centroid - residue.carbon_alpha) > 0
    np.testing.assert_allclose(record.nitrogen, 0.0)
    np.testing.assert_allclose(record.carbon, 0.0)
