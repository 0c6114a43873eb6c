"""
Angular preference sources: per amino acid Ramachandran surfaces that
report which direction in (phi, psi) space is statistically favoured.
"""

from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy.interpolate import RegularGridInterpolator
from scipy.ndimage import gaussian_filter1d

from peptidefold.constants import STANDARD_AA_RECORDS
from peptidefold.exceptions import ConfigurationError
from peptidefold.geometry import EPSILON, angle_difference, wrap_angle
from peptidefold.log import logger
from peptidefold.peptide import get_aa_record

Gradient = Tuple[float, float]
TABLE_COLUMNS = ["phi", "psi", "density"]


### DISTRIBUTIONS ###
class RamachandranDistribution:
  def __init__(self, amino_acid: str):
    """Preference surface of one amino acid over (phi, psi).

    Subclasses implement :meth:`gradient_at` and never change after construction,
    so one instance can be shared by every residue and every simulation.

    Parameters:
      amino_acid: 1 letter code, 3 letter abbreviation, or full name
    """
    self.amino_acid = get_aa_record(amino_acid).abr

  def gradient_at(self, phi: float, psi: float) -> Gradient:
    """Direction of increasing preference at (phi, psi).

    Parameters:
      phi: Phi angle in degrees
      psi: Psi angle in degrees

    Returns:
      ``(dPhi, dPsi)`` with a magnitude of at most one

    """
    raise NotImplementedError


class FixedRamachandranDistribution(RamachandranDistribution):
  def __init__(self, amino_acid: str, phi: float, psi: float):
    """Distribution whose only preference is a single target point.

    Parameters:
      amino_acid: Amino acid the distribution describes
      phi: Target phi angle in degrees
      psi: Target psi angle in degrees
    """
    super().__init__(amino_acid)
    self.phi = wrap_angle(phi)
    self.psi = wrap_angle(psi)

  def __repr__(self):
    return f"<FixedRamachandranDistribution {self.amino_acid} phi={self.phi} psi={self.psi}>"

  def gradient_at(self, phi: float, psi: float) -> Gradient:
    """Unit vector toward the target, taking the shorter way around. Zero at the target."""
    d_phi = angle_difference(self.phi, phi)
    d_psi = angle_difference(self.psi, psi)
    magnitude = np.hypot(d_phi, d_psi)
    if magnitude < EPSILON:
      return 0.0, 0.0
    return d_phi / magnitude, d_psi / magnitude


class EmpiricalRamachandranDistribution(RamachandranDistribution):
  def __init__(self, amino_acid: str, table: pd.DataFrame, smoothing: float = 0.0):
    """Distribution interpolated from sampled phi/psi/density triples.

    The samples are pivoted onto a regular grid (missing cells count as zero
    density), optionally smoothed with a periodic Gaussian filter, and
    differentiated. Gradients are scaled so the steepest point of the surface
    has a magnitude of one.

    Parameters:
      amino_acid: Amino acid the distribution describes
      table: DataFrame with ``phi``, ``psi`` and ``density`` columns (degrees)
      smoothing: Standard deviation of the Gaussian filter in grid cells, 0 to disable
    """
    super().__init__(amino_acid)
    missing = set(TABLE_COLUMNS) - set(table.columns)
    if missing:
      raise ConfigurationError(f"Ramachandran table for {self.amino_acid} is missing columns {sorted(missing)}")
    grid = table.pivot_table(index="phi", columns="psi", values="density", aggfunc="mean").fillna(0.0)
    self.phi_grid = grid.index.to_numpy(dtype=np.float64)
    self.psi_grid = grid.columns.to_numpy(dtype=np.float64)
    if len(self.phi_grid) < 2 or len(self.psi_grid) < 2:
      raise ConfigurationError(f"Ramachandran table for {self.amino_acid} needs at least two samples along phi and psi")

    density = grid.to_numpy(dtype=np.float64)
    if smoothing > 0:
      density = gaussian_filter1d(gaussian_filter1d(density, smoothing, axis=0, mode="wrap"), smoothing, axis=1, mode="wrap")
    self.density = density

    d_phi, d_psi = np.gradient(density, self.phi_grid, self.psi_grid)
    peak = np.hypot(d_phi, d_psi).max()
    if peak > 0:
      d_phi = d_phi / peak
      d_psi = d_psi / peak

    axes = (self.phi_grid, self.psi_grid)
    self._density = RegularGridInterpolator(axes, density)
    self._d_phi = RegularGridInterpolator(axes, d_phi)
    self._d_psi = RegularGridInterpolator(axes, d_psi)
    logger.debug(f"Built Ramachandran surface for {self.amino_acid} on a {density.shape[0]}x{density.shape[1]} grid")

  @classmethod
  def from_csv(cls, amino_acid: str, path: Union[str, Path], smoothing: float = 0.0) -> "EmpiricalRamachandranDistribution":
    """Load a distribution from a CSV file.

    The file either has a ``phi,psi,density`` header or three unnamed numeric
    columns in that order.

    Parameters:
      amino_acid: Amino acid the distribution describes
      path: Path to the CSV file
      smoothing: See :class:`EmpiricalRamachandranDistribution`

    """
    table = pd.read_csv(path)
    table.columns = [str(column).strip().lower() for column in table.columns]
    if not set(TABLE_COLUMNS).issubset(table.columns):
      table = pd.read_csv(path, header=None, names=TABLE_COLUMNS, usecols=[0, 1, 2])
    return cls(amino_acid, table, smoothing=smoothing)

  def __repr__(self):
    return f"<EmpiricalRamachandranDistribution {self.amino_acid} grid={self.density.shape}>"

  def _query_point(self, phi: float, psi: float) -> np.ndarray:
    phi = np.clip(wrap_angle(phi), self.phi_grid[0], self.phi_grid[-1])
    psi = np.clip(wrap_angle(psi), self.psi_grid[0], self.psi_grid[-1])
    return np.array([[phi, psi]])

  def density_at(self, phi: float, psi: float) -> float:
    """Interpolated (smoothed) density at (phi, psi)."""
    return float(self._density(self._query_point(phi, psi))[0])

  def gradient_at(self, phi: float, psi: float) -> Gradient:
    point = self._query_point(phi, psi)
    return float(self._d_phi(point)[0]), float(self._d_psi(point)[0])


### SOURCES ###
class RamachandranSource:
  """Provides the distribution to use for every amino acid."""

  def get_distribution(self, amino_acid: str) -> RamachandranDistribution:
    raise NotImplementedError

  def gradient_at(self, amino_acid: str, phi: float, psi: float) -> Gradient:
    """Gradient of the distribution for ``amino_acid`` at (phi, psi)."""
    return self.get_distribution(amino_acid).gradient_at(phi, psi)


class FixedRamachandranSource(RamachandranSource):
  def __init__(self, distribution: RamachandranDistribution):
    """Source answering every amino acid with the same distribution.

    Parameters:
      distribution: Distribution shared by all amino acids
    """
    self.distribution = distribution

  def get_distribution(self, amino_acid: str) -> RamachandranDistribution:
    return self.distribution


class DirectoryRamachandranSource(RamachandranSource):
  def __init__(self, directory: Union[str, Path], amino_acids: Optional[Iterable[str]] = None, smoothing: float = 0.0):
    """Source reading one ``<ABR>.csv`` file per amino acid from a directory.

    All files are loaded once here. Amino acids without a file are reported
    and only fail once a residue of that type is looked up.

    Parameters:
      directory: Directory containing files such as ``ALA.csv``
      amino_acids: Restrict loading to these amino acids, defaults to all 20 standard ones
      smoothing: See :class:`EmpiricalRamachandranDistribution`
    """
    self.directory = Path(directory)
    if not self.directory.is_dir():
      raise ConfigurationError(f"Ramachandran directory {self.directory} does not exist")
    if amino_acids is None:
      records = STANDARD_AA_RECORDS
    else:
      records = [get_aa_record(aa) for aa in amino_acids]

    distributions = [None] * len(STANDARD_AA_RECORDS)
    for rec in records:
      fpath = self.directory / f"{rec.abr}.csv"
      if not fpath.exists():
        logger.warning(f"No Ramachandran table found for {rec.abr} at {fpath}")
        continue
      distributions[rec.ordinal] = EmpiricalRamachandranDistribution.from_csv(rec.abr, fpath, smoothing=smoothing)
    self._distributions = tuple(distributions)
    loaded = sum(dist is not None for dist in self._distributions)
    logger.info(f"Loaded Ramachandran tables for {loaded} amino acids from {self.directory}")

  def get_distribution(self, amino_acid: str) -> RamachandranDistribution:
    rec = get_aa_record(amino_acid)
    distribution = self._distributions[rec.ordinal]
    if distribution is None:
      raise ConfigurationError(f"No Ramachandran data available for {rec.abr}")
    return distribution
