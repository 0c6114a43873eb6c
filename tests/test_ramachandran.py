# tests/test_ramachandran.py
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from peptidefold.exceptions import ConfigurationError
from peptidefold.ramachandran import (
  DirectoryRamachandranSource,
  EmpiricalRamachandranDistribution,
  FixedRamachandranDistribution,
  FixedRamachandranSource,
)

PEAK = (-60.0, -40.0)


def make_table(peak=PEAK, width=30.0, step=10.0) -> pd.DataFrame:
  grid = np.arange(-180.0, 180.0, step)
  phi, psi = np.meshgrid(grid, grid, indexing="ij")
  density = np.exp(-((phi - peak[0]) ** 2 + (psi - peak[1]) ** 2) / (2 * width**2))
  return pd.DataFrame({"phi": phi.ravel(), "psi": psi.ravel(), "density": density.ravel()})


# -----------------------
# Fixed distribution
# -----------------------


def test_fixed_gradient_points_to_target():
  dist = FixedRamachandranDistribution("ALA", -90.0, -20.0)
  d_phi, d_psi = dist.gradient_at(0.0, 0.0)
  assert d_phi < 0 and d_psi < 0
  assert np.hypot(d_phi, d_psi) == pytest.approx(1.0)
  assert d_phi / d_psi == pytest.approx(90.0 / 20.0)


def test_fixed_gradient_zero_at_target():
  dist = FixedRamachandranDistribution("A", -90.0, -20.0)
  assert dist.gradient_at(-90.0, -20.0) == (0.0, 0.0)


def test_fixed_gradient_wraps_around():
  dist = FixedRamachandranDistribution("ALA", 170.0, 0.0)
  d_phi, d_psi = dist.gradient_at(-170.0, 0.0)
  assert d_phi == pytest.approx(-1.0)
  assert d_psi == pytest.approx(0.0)


def test_fixed_source_serves_every_amino_acid():
  dist = FixedRamachandranDistribution("ALA", -90.0, -20.0)
  source = FixedRamachandranSource(dist)
  assert source.get_distribution("TRP") is dist
  assert source.gradient_at("G", 0.0, 0.0) == dist.gradient_at(0.0, 0.0)


# -----------------------
# Empirical distribution
# -----------------------


def test_empirical_gradient_climbs_toward_peak():
  dist = EmpiricalRamachandranDistribution("ALA", make_table())
  d_phi, d_psi = dist.gradient_at(-120.0, PEAK[1])
  assert d_phi > 0
  assert d_psi == pytest.approx(0.0, abs=1e-9)
  d_phi, d_psi = dist.gradient_at(PEAK[0], 20.0)
  assert d_psi < 0
  assert d_phi == pytest.approx(0.0, abs=1e-9)


def test_empirical_gradient_is_unit_bounded():
  dist = EmpiricalRamachandranDistribution("ALA", make_table())
  magnitudes = [np.hypot(*dist.gradient_at(phi, psi)) for phi in range(-180, 180, 15) for psi in range(-180, 180, 15)]
  assert max(magnitudes) <= 1.0 + 1e-9
  assert max(magnitudes) > 0.5


def test_empirical_density_at():
  dist = EmpiricalRamachandranDistribution("ALA", make_table())
  assert dist.density_at(*PEAK) == pytest.approx(1.0)
  assert dist.density_at(120.0, 120.0) < 0.01
  # queries outside the sampled range wrap around
  assert dist.density_at(PEAK[0] + 360.0, PEAK[1]) == pytest.approx(1.0)


def test_empirical_missing_cells_count_as_zero():
  table = make_table()
  table = table[~((table.phi == PEAK[0]) & (table.psi == PEAK[1]))]
  dist = EmpiricalRamachandranDistribution("ALA", table)
  assert dist.density_at(*PEAK) == pytest.approx(0.0)


def test_empirical_smoothing_flattens_peak():
  raw = EmpiricalRamachandranDistribution("ALA", make_table(width=10.0))
  smooth = EmpiricalRamachandranDistribution("ALA", make_table(width=10.0), smoothing=2.0)
  assert smooth.density_at(*PEAK) < raw.density_at(*PEAK)
  assert smooth.density.sum() == pytest.approx(raw.density.sum(), rel=1e-6)


def test_empirical_requires_two_samples_per_axis():
  table = pd.DataFrame({"phi": [-60.0, -50.0], "psi": [-40.0, -40.0], "density": [1.0, 0.5]})
  with pytest.raises(ConfigurationError):
    EmpiricalRamachandranDistribution("ALA", table)


def test_empirical_requires_columns():
  with pytest.raises(ConfigurationError):
    EmpiricalRamachandranDistribution("ALA", pd.DataFrame({"phi": [0.0], "psi": [0.0]}))


def test_from_csv_with_and_without_header(tmp_path: Path):
  table = make_table()
  with_header = tmp_path / "with_header.csv"
  without_header = tmp_path / "without_header.csv"
  table.to_csv(with_header, index=False)
  table.to_csv(without_header, index=False, header=False)

  a = EmpiricalRamachandranDistribution.from_csv("ALA", with_header)
  b = EmpiricalRamachandranDistribution.from_csv("ALA", without_header)
  np.testing.assert_allclose(a.density, b.density)
  assert a.gradient_at(-100.0, 10.0) == pytest.approx(b.gradient_at(-100.0, 10.0))


# -----------------------
# Directory source
# -----------------------


def test_directory_source(tmp_path: Path):
  make_table().to_csv(tmp_path / "ALA.csv", index=False)
  make_table(peak=(60.0, 40.0)).to_csv(tmp_path / "GLY.csv", index=False)
  source = DirectoryRamachandranSource(tmp_path)

  assert source.get_distribution("A").amino_acid == "ALA"
  assert source.get_distribution("glycine").amino_acid == "GLY"
  assert source.gradient_at("ALA", -120.0, PEAK[1])[0] > 0
  assert source.gradient_at("GLY", 0.0, 40.0)[0] > 0
  with pytest.raises(ConfigurationError):
    source.get_distribution("TRP")


def test_directory_source_restricted_amino_acids(tmp_path: Path):
  make_table().to_csv(tmp_path / "ALA.csv", index=False)
  make_table().to_csv(tmp_path / "GLY.csv", index=False)
  source = DirectoryRamachandranSource(tmp_path, amino_acids=["G"])
  assert source.get_distribution("GLY").amino_acid == "GLY"
  with pytest.raises(ConfigurationError):
    source.get_distribution("ALA")


def test_directory_source_missing_directory(tmp_path: Path):
  with pytest.raises(ConfigurationError):
    DirectoryRamachandranSource(tmp_path / "nope")


def test_unknown_amino_acid():
  with pytest.raises(ValueError):
    FixedRamachandranDistribution("XYZ", 0.0, 0.0)
