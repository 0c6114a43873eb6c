"""
Data model shared by every component: residues, the peptide chain and
the per-residue force accumulators.
"""

import threading
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Union

import numpy as np

from peptidefold.constants import AA_ALIASES, AA_RECORDS, BACKBONE_ATOMS, BACKBONE_FIELDS, AARecord
from peptidefold.exceptions import ConfigurationError

Vector = Optional[np.ndarray]


### FUNCTIONS ###
def get_aa_record(query: str) -> AARecord:
  """Get a standard amino acid using either its 1 letter code,
  3 letter abbreviation, or full name.

  Parameters:
    query: Amino acid code, abbreviation, or name

  Returns:
    The matching :class:`peptidefold.constants.AARecord`

  """
  try:
    return AA_RECORDS[AA_ALIASES[query.upper()]]
  except KeyError:
    raise ValueError(f"Unknown amino acid for {query}")


def _as_position(value) -> Vector:
  if value is None:
    return None
  position = np.array(value, dtype=np.float64)
  if position.shape != (3,):
    raise ValueError(f"Atom positions must be 3D vectors, got shape {position.shape}")
  return position


def _atom_slot(atom: Union[int, str]) -> int:
  if isinstance(atom, int):
    if not 0 <= atom < 3:
      raise IndexError(f"Backbone atom index {atom} out of range")
    return atom
  if atom in BACKBONE_ATOMS:
    return BACKBONE_ATOMS.index(atom)
  if atom in BACKBONE_FIELDS:
    return BACKBONE_FIELDS.index(atom)
  raise ValueError(f"Unknown backbone atom {atom}")


### CLASSES ###
class Residue:
  def __init__(
    self,
    amino_acid: str,
    nitrogen: Vector = None,
    carbon_alpha: Vector = None,
    carbon: Vector = None,
    phi: Optional[float] = None,
    psi: Optional[float] = None,
    omega: Optional[float] = None,
  ):
    """A single amino acid of a peptide backbone.

    Positions are in picometres and ``None`` while unknown. Dihedral angles
    are in degrees and ``None`` while undefined (chain termini or never
    measured).

    Parameters:
      amino_acid: 1 letter code, 3 letter abbreviation, or full name
      nitrogen: Position of the backbone nitrogen (N)
      carbon_alpha: Position of the alpha carbon (CA)
      carbon: Position of the carbonyl carbon (C)
      phi: Dihedral C(i-1), N, CA, C
      psi: Dihedral N, CA, C, N(i+1)
      omega: Dihedral CA(i-1), C(i-1), N, CA
    """
    self._record = get_aa_record(amino_acid)
    self.nitrogen = nitrogen
    self.carbon_alpha = carbon_alpha
    self.carbon = carbon
    self.phi = phi
    self.psi = psi
    self.omega = omega

  def __repr__(self):
    return f"<Residue {self.amino_acid} phi={self.phi} psi={self.psi} omega={self.omega}>"

  @property
  def amino_acid(self) -> str:
    """3 letter abbreviation of the amino acid, fixed at creation."""
    return self._record.abr

  @property
  def record(self) -> AARecord:
    return self._record

  @property
  def nitrogen(self) -> Vector:
    return self._nitrogen

  @nitrogen.setter
  def nitrogen(self, value):
    self._nitrogen = _as_position(value)

  @property
  def carbon_alpha(self) -> Vector:
    return self._carbon_alpha

  @carbon_alpha.setter
  def carbon_alpha(self, value):
    self._carbon_alpha = _as_position(value)

  @property
  def carbon(self) -> Vector:
    return self._carbon

  @carbon.setter
  def carbon(self, value):
    self._carbon = _as_position(value)

  def positions(self) -> List[Vector]:
    """Positions of N, CA and C in that order (entries may be ``None``)."""
    return [self._nitrogen, self._carbon_alpha, self._carbon]

  def is_positioned(self) -> bool:
    """True once all three backbone atoms have a position."""
    return all(position is not None for position in self.positions())


class Peptide:
  def __init__(self, residues: Iterable[Residue]):
    """An ordered chain of residues sharing one frame of reference.

    The carbon of residue ``i`` is bonded to the nitrogen of residue ``i+1``.
    The order and length of the chain never change after construction,
    positions may be filled in partially and at any time.

    Parameters:
      residues: Residues in chain order (N to C terminus)
    """
    self._residues = tuple(residues)
    if not self._residues:
      raise ValueError("A peptide requires at least one residue")
    self.velocities = np.zeros((len(self._residues), 3, 3))
    # held for the whole duration of a simulation
    self._simulation_lock = threading.Lock()

  @classmethod
  def from_sequence(cls, sequence: Union[str, Iterable[str]]) -> "Peptide":
    """Build an unpositioned peptide.

    Parameters:
      sequence: Either a string of 1 letter codes or an iterable of codes,
        3 letter abbreviations or full names

    Returns:
      A peptide whose residues have no positions and no angles

    """
    if isinstance(sequence, str):
      sequence = sequence.strip()
    return cls(Residue(token) for token in sequence)

  def __repr__(self):
    return f"<Peptide {self.sequence} ({len(self)} residues)>"

  def __len__(self):
    return len(self._residues)

  def __getitem__(self, index: int) -> Residue:
    return self._residues[index]

  def __iter__(self) -> Iterator[Residue]:
    return iter(self._residues)

  @property
  def residues(self):
    return self._residues

  @property
  def sequence(self) -> str:
    """Sequence as 1 letter codes."""
    return "".join(residue.record.code for residue in self._residues)

  def is_positioned(self) -> bool:
    """True when every backbone atom of every residue has a position."""
    return all(residue.is_positioned() for residue in self._residues)

  def backbone(self) -> np.ndarray:
    """Copy of all backbone positions.

    Returns:
      Array of shape ``(n, 3, 3)`` with atoms ordered N, CA, C

    Raises:
      ConfigurationError: If any backbone position is unset

    """
    coords = np.empty((len(self), 3, 3))
    for i, residue in enumerate(self._residues):
      for j, position in enumerate(residue.positions()):
        if position is None:
          raise ConfigurationError(f"Backbone atom {BACKBONE_ATOMS[j]} is not positioned", residue_index=i)
        coords[i, j] = position
    return coords

  def set_backbone(self, coords: np.ndarray):
    """Write an ``(n, 3, 3)`` array of positions back onto the residues."""
    coords = np.asarray(coords, dtype=np.float64)
    if coords.shape != (len(self), 3, 3):
      raise ValueError(f"Expected backbone of shape {(len(self), 3, 3)}, got {coords.shape}")
    for residue, (n, ca, c) in zip(self._residues, coords):
      residue.nitrogen = n
      residue.carbon_alpha = ca
      residue.carbon = c

  def reset_velocities(self):
    self.velocities = np.zeros((len(self), 3, 3))


@dataclass
class ForceRecord:
  """Forces acting on the three backbone atoms of one residue.

  The vectors are views into the owning :class:`ForceRecords`.
  """

  nitrogen: np.ndarray
  carbon_alpha: np.ndarray
  carbon: np.ndarray


class ForceRecords:
  def __init__(self, size: int):
    """Additive force accumulator aligned to chain indices.

    Parameters:
      size: Number of residues in the chain
    """
    self.forces = np.zeros((size, 3, 3))

  @classmethod
  def for_peptide(cls, peptide: Peptide) -> "ForceRecords":
    return cls(len(peptide))

  def __len__(self):
    return len(self.forces)

  def __getitem__(self, index: int) -> ForceRecord:
    row = self.forces[index]
    return ForceRecord(row[0], row[1], row[2])

  def __iter__(self) -> Iterator[ForceRecord]:
    for i in range(len(self)):
      yield self[i]

  def __add__(self, other: "ForceRecords") -> "ForceRecords":
    result = ForceRecords(len(self))
    result.forces = self.forces + other.forces
    return result

  def add(self, index: int, atom: Union[int, str], vector: np.ndarray):
    """Add a force vector onto one atom.

    Parameters:
      index: Chain index of the residue
      atom: ``"N"``, ``"CA"``, ``"C"``, the matching residue attribute name, or 0-2
      vector: Force to add

    """
    self.forces[index, _atom_slot(atom)] += vector

  def merge(self, other: "ForceRecords") -> "ForceRecords":
    """Add every force of ``other`` into this accumulator in place."""
    if len(other) != len(self):
      raise ValueError(f"Cannot merge forces for {len(other)} residues into {len(self)}")
    self.forces += other.forces
    return self
