"""
Measurements on a (partially) positioned peptide backbone.
"""

from typing import List, NamedTuple, Optional

import numpy as np
from scipy.spatial import ConvexHull, QhullError

from peptidefold.exceptions import GeometryError
from peptidefold.geometry import dihedral
from peptidefold.peptide import Peptide


### CLASSES ###
class BackboneAngles(NamedTuple):
  """Dihedral angles of one residue in degrees, ``None`` when undefined."""

  phi: Optional[float]
  psi: Optional[float]
  omega: Optional[float]


### FUNCTIONS ###
def _dihedral_or_none(*points) -> Optional[float]:
  if any(point is None for point in points):
    return None
  return dihedral(*points)


def measure_angles(peptide: Peptide, update: bool = False) -> List[BackboneAngles]:
  """Measure phi, psi and omega of every residue from the current positions.

  phi is undefined for the first residue, psi for the last one and omega for
  the first one. Any angle that involves an unset position is undefined too.

  Parameters:
    peptide: Peptide to measure
    update: If True the measured angles are written onto the residues

  Returns:
    One :class:`BackboneAngles` per residue in chain order

  Raises:
    GeometryError: If three consecutive atoms of a dihedral are collinear,
      tagged with the index of the residue being measured

  """
  angles = []
  residues = peptide.residues
  for i, residue in enumerate(residues):
    prev = residues[i - 1] if i > 0 else None
    nxt = residues[i + 1] if i + 1 < len(residues) else None
    phi = psi = omega = None
    try:
      if prev is not None:
        phi = _dihedral_or_none(prev.carbon, residue.nitrogen, residue.carbon_alpha, residue.carbon)
        omega = _dihedral_or_none(prev.carbon_alpha, prev.carbon, residue.nitrogen, residue.carbon_alpha)
      if nxt is not None:
        psi = _dihedral_or_none(residue.nitrogen, residue.carbon_alpha, residue.carbon, nxt.nitrogen)
    except GeometryError as e:
      if e.residue_index is None:
        e.residue_index = i
      raise
    angles.append(BackboneAngles(phi, psi, omega))

  if update:
    for residue, measured in zip(residues, angles):
      residue.phi, residue.psi, residue.omega = measured
  return angles


def measure_compactness(peptide: Peptide) -> float:
  """Volume of the convex hull around all positioned backbone atoms.

  Parameters:
    peptide: Peptide to measure

  Returns:
    Volume in pm³, 0.0 for fewer than four atoms or a flat point cloud

  """
  points = [position for residue in peptide for position in residue.positions() if position is not None]
  if len(points) < 4:
    return 0.0
  try:
    return float(ConvexHull(np.array(points)).volume)
  except QhullError:
    return 0.0


def measure_bond_lengths(peptide: Peptide) -> np.ndarray:
  """Lengths of the backbone bonds of every residue.

  Returns:
    Array of shape ``(n, 3)`` holding the N-CA, CA-C and C-N(next) distances
    in pm, NaN where either atom is unset or there is no next residue

  """
  lengths = np.full((len(peptide), 3), np.nan)
  residues = peptide.residues
  for i, residue in enumerate(residues):
    n, ca, c = residue.positions()
    if n is not None and ca is not None:
      lengths[i, 0] = np.linalg.norm(ca - n)
    if ca is not None and c is not None:
      lengths[i, 1] = np.linalg.norm(c - ca)
    if i + 1 < len(residues) and c is not None and residues[i + 1].nitrogen is not None:
      lengths[i, 2] = np.linalg.norm(residues[i + 1].nitrogen - c)
  return lengths
