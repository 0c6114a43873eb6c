"""
Force fields turning the current backbone geometry into per-atom pseudo-forces.

Every force field is a pure function of the geometry it is handed: it reads
positions, never writes them, and keeps no geometry between calls.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

import numpy as np

from peptidefold.builder import CA_C_LENGTH, C_N_LENGTH, N_CA_LENGTH
from peptidefold.exceptions import FoldingError
from peptidefold.geometry import EPSILON, normalize
from peptidefold.measurements import BackboneAngles, measure_angles
from peptidefold.peptide import ForceRecords, Peptide
from peptidefold.ramachandran import RamachandranSource

# (residue index, atom slot, force)
Contribution = Tuple[int, int, np.ndarray]
N, CA, C = 0, 1, 2


### FUNCTIONS ###
def _axis_forces(p0, p1, p2, p3, f0: np.ndarray, f3: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
  """Forces on the two axis atoms of a dihedral that cancel the net force of
  the end atom forces ``f0`` and ``f3``, leaving the torque about the axis."""
  b1 = p1 - p0
  b2 = p2 - p1
  b3 = p3 - p2
  axis_sq = np.dot(b2, b2)
  c1 = np.dot(b1, b2) / axis_sq
  c3 = np.dot(b3, b2) / axis_sq
  f1 = -(1.0 + c1) * f0 + c3 * f3
  f2 = -(1.0 + c3) * f3 + c1 * f0
  return f1, f2


def _dihedral_contributions(
  atoms: Sequence[Tuple[int, int, np.ndarray]],
  gradient: float,
) -> List[Contribution]:
  """Forces that increase the dihedral formed by four atoms when ``gradient`` is positive.

  Parameters:
    atoms: Four ``(residue index, atom slot, position)`` triples in dihedral order
    gradient: Requested rate of change of the dihedral, in [-1, 1]

  """
  if gradient == 0.0:
    return []
  (i0, s0, p0), (i1, s1, p1), (i2, s2, p2), (i3, s3, p3) = atoms
  axis = p2 - p1
  f0 = gradient * normalize(np.cross(p0 - p1, axis))
  f3 = gradient * normalize(np.cross(axis, p3 - p2))
  f1, f2 = _axis_forces(p0, p1, p2, p3, f0, f3)
  return [(i0, s0, f0), (i1, s1, f1), (i2, s2, f2), (i3, s3, f3)]


def omega_deviation(omega: float) -> float:
  """Signed distance in degrees from omega to the nearest planar trans value (±180)."""
  return -180.0 - omega if omega < 0 else 180.0 - omega


### CLASSES ###
class ForceField:
  """Anything that can compute per-residue backbone forces for a peptide."""

  def compute_forces(self, peptide: Peptide) -> ForceRecords:
    raise NotImplementedError


class RamachandranForceField(ForceField):
  def __init__(
    self,
    source: RamachandranSource,
    dihedral_force: float = 1.0,
    omega_force: float = 1.0,
    max_workers: Optional[int] = None,
  ):
    """Pushes phi/psi toward favoured Ramachandran regions and keeps omega planar.

    For every residue with phi and psi defined, the gradient of its amino
    acid's distribution is turned into forces on the end atoms of each
    dihedral (previous C and C for phi, N and next N for psi), rotating them
    about the dihedral axis. Omega is restored toward ±180° with a unit force
    on the previous and current alpha carbons.

    The axis atoms of each phi/psi dihedral (N and CA for phi, CA and C for
    psi) also receive forces, chosen so that every dihedral term has zero net
    force. Phi and psi of one residue share the N-CA-C atoms. With end-atom
    forces alone each term drags the other dihedral off its target, and a
    residue started far from the favoured region stalls instead of converging.

    With ``max_workers`` above one, residues are computed on a thread pool
    created on first use and reused by later calls. Call :meth:`close` (or
    use the field as a context manager) to shut it down.

    Parameters:
      source: Provides the distribution for every amino acid
      dihedral_force: Scale applied to the phi/psi gradient forces
      omega_force: Magnitude of the omega restoring force
      max_workers: Compute residues on a thread pool of this size, None to stay on the calling thread
    """
    self.source = source
    self.dihedral_force = dihedral_force
    self.omega_force = omega_force
    self.max_workers = max_workers
    self._executor: Optional[ThreadPoolExecutor] = None
    self._executor_lock = threading.Lock()

  def __enter__(self):
    return self

  def __exit__(self, exc_type, exc_value, traceback):
    self.close()

  def close(self):
    """Shut down the worker pool, if one was started. The field stays usable
    and starts a fresh pool on its next threaded call."""
    with self._executor_lock:
      executor, self._executor = self._executor, None
    if executor is not None:
      executor.shutdown(wait=True)

  def _get_executor(self) -> ThreadPoolExecutor:
    with self._executor_lock:
      if self._executor is None:
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="peptidefold-forces")
      return self._executor

  def compute_forces(self, peptide: Peptide) -> ForceRecords:
    """Forces for the current geometry of ``peptide``.

    Residues are computed independently and merged in chain order, so the
    result never depends on how work was scheduled.
    """
    angles = measure_angles(peptide)
    indices = range(len(peptide))
    if self.max_workers is not None and self.max_workers > 1 and len(peptide) > 1:
      executor = self._get_executor()
      per_residue = list(executor.map(lambda i: self._residue_contributions(peptide, angles, i), indices))
    else:
      per_residue = [self._residue_contributions(peptide, angles, i) for i in indices]

    records = ForceRecords.for_peptide(peptide)
    for contributions in per_residue:
      for index, slot, force in contributions:
        records.add(index, slot, force)
    return records

  def _residue_contributions(self, peptide: Peptide, angles: List[BackboneAngles], i: int) -> List[Contribution]:
    try:
      return self._dihedral_terms(peptide, angles, i) + self._omega_terms(peptide, angles, i)
    except FoldingError as e:
      if e.residue_index is None:
        e.residue_index = i
      raise

  def _dihedral_terms(self, peptide: Peptide, angles: List[BackboneAngles], i: int) -> List[Contribution]:
    phi, psi, _ = angles[i]
    if phi is None or psi is None:
      return []
    residue = peptide[i]
    prev = peptide[i - 1]
    nxt = peptide[i + 1]
    d_phi, d_psi = self.source.gradient_at(residue.amino_acid, phi, psi)

    contributions = _dihedral_contributions(
      [(i - 1, C, prev.carbon), (i, N, residue.nitrogen), (i, CA, residue.carbon_alpha), (i, C, residue.carbon)],
      self.dihedral_force * d_phi,
    )
    contributions += _dihedral_contributions(
      [(i, N, residue.nitrogen), (i, CA, residue.carbon_alpha), (i, C, residue.carbon), (i + 1, N, nxt.nitrogen)],
      self.dihedral_force * d_psi,
    )
    return contributions

  def _omega_terms(self, peptide: Peptide, angles: List[BackboneAngles], i: int) -> List[Contribution]:
    omega = angles[i].omega
    if omega is None or i == 0:
      return []
    sign = np.sign(omega_deviation(omega))
    if sign == 0:
      return []
    residue = peptide[i]
    prev = peptide[i - 1]
    peptide_bond = residue.nitrogen - prev.carbon
    prev_force = sign * self.omega_force * normalize(np.cross(prev.carbon_alpha - prev.carbon, peptide_bond))
    force = sign * self.omega_force * normalize(np.cross(peptide_bond, residue.carbon_alpha - residue.nitrogen))
    return [(i - 1, CA, prev_force), (i, CA, force)]


class BondForceField(ForceField):
  def __init__(self, stiffness: float = 0.3):
    """Harmonic restoring force along every backbone bond.

    Each bond pulls both of its atoms toward the covalent radius length with
    a force of ``stiffness`` per pm of deviation.

    Parameters:
      stiffness: Force per pm of deviation from the ideal bond length
    """
    self.stiffness = stiffness

  def compute_forces(self, peptide: Peptide) -> ForceRecords:
    records = ForceRecords.for_peptide(peptide)
    residues = peptide.residues
    for i, residue in enumerate(residues):
      bonds = [
        ((i, N), residue.nitrogen, (i, CA), residue.carbon_alpha, N_CA_LENGTH),
        ((i, CA), residue.carbon_alpha, (i, C), residue.carbon, CA_C_LENGTH),
      ]
      if i + 1 < len(residues):
        bonds.append(((i, C), residue.carbon, (i + 1, N), residues[i + 1].nitrogen, C_N_LENGTH))
      for (ia, sa), pa, (ib, sb), pb, ideal in bonds:
        if pa is None or pb is None:
          continue
        delta = pb - pa
        length = np.linalg.norm(delta)
        if length < EPSILON:
          continue
        force = self.stiffness * (length - ideal) * (delta / length)
        records.add(ia, sa, force)
        records.add(ib, sb, -force)
    return records


class CompactingForceField(ForceField):
  def __init__(self, strength: float = 1.0):
    """Pulls every alpha carbon toward the centroid of all alpha carbons.

    Parameters:
      strength: Magnitude of the force on each alpha carbon
    """
    self.strength = strength

  def compute_forces(self, peptide: Peptide) -> ForceRecords:
    records = ForceRecords.for_peptide(peptide)
    positioned = [(i, residue.carbon_alpha) for i, residue in enumerate(peptide) if residue.carbon_alpha is not None]
    if len(positioned) < 2:
      return records
    centroid = np.mean([position for _, position in positioned], axis=0)
    for i, position in positioned:
      offset = centroid - position
      if np.linalg.norm(offset) < EPSILON:
        continue
      records.add(i, CA, self.strength * normalize(offset))
    return records
