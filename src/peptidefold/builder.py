"""
Backbone reconstruction: places missing N, CA and C atoms from bond
lengths, bond angles and backbone dihedrals.
"""

from typing import Optional

import numpy as np

from peptidefold.constants import (
  BOND_ANGLE_C_N_CA,
  BOND_ANGLE_CA_C_N,
  BOND_ANGLE_N_CA_C,
  DEFAULT_OMEGA,
  DEFAULT_PHI,
  DEFAULT_PSI,
  bond_length,
)
from peptidefold.exceptions import ConfigurationError
from peptidefold.geometry import compute_position, dihedral
from peptidefold.log import logger
from peptidefold.peptide import Peptide, Residue

# Bond lengths in pm, derived from covalent radii
C_N_LENGTH = bond_length("C", "N")
N_CA_LENGTH = bond_length("N", "C")
CA_C_LENGTH = bond_length("C", "C")

# Start frame orientation: alpha carbon offset from the carbon, and the
# direction of the N->CA bond of the virtual residue preceding the chain
START_CA_OFFSET = np.array([-CA_C_LENGTH, 0.0, 0.0])
START_N_CA_DIRECTION = np.array([0.0, 1.0, 0.0])


### FUNCTIONS ###
def position_residue(
  residue: Residue,
  previous_residue: Optional[Residue] = None,
  start_position: Optional[np.ndarray] = None,
) -> Residue:
  """Place the missing backbone atoms of one residue.

  The nitrogen is placed from the previous carbon using the previous psi, the
  alpha carbon from the nitrogen using omega and the carbon from the alpha
  carbon using phi. Atoms that already have a position are kept.

  Unset omega and phi fall back to 180° and 0° and are written back on the
  residue. The previous residue's psi (0° when unset) is back-filled once the
  nitrogen exists.

  Residues placed from a start frame are still built with the default omega
  and phi, but those defaults are not written back. The dihedrals run through
  the virtual atoms of the start frame, which are not part of the chain, so
  omega and phi of the first residue stay undefined like any other terminal
  angle. Builders that store 180° and 0° there report angles no measurement
  of the chain can reproduce.

  Parameters:
    residue: Residue to complete, mutated in place
    previous_residue: Fully positioned predecessor in the chain
    start_position: Position of the virtual carbon preceding the first residue (pm)

  Returns:
    The same residue

  Raises:
    ConfigurationError: If neither ``previous_residue`` nor ``start_position``
      is provided, or the previous residue is not positioned

  """
  if previous_residue is None and start_position is None:
    raise ConfigurationError("Positioning a residue requires either a previous residue or a start position")

  if previous_residue is not None:
    if not previous_residue.is_positioned():
      raise ConfigurationError("The previous residue must be fully positioned first")
    prev_carbon = previous_residue.carbon
    prev_carbon_alpha = previous_residue.carbon_alpha
    prev_n_ca = prev_carbon_alpha - previous_residue.nitrogen
    psi = previous_residue.psi if previous_residue.psi is not None else DEFAULT_PSI
  else:
    prev_carbon = np.asarray(start_position, dtype=np.float64)
    prev_carbon_alpha = prev_carbon + START_CA_OFFSET
    prev_n_ca = START_N_CA_DIRECTION
    psi = DEFAULT_PSI
  omega = residue.omega if residue.omega is not None else DEFAULT_OMEGA
  phi = residue.phi if residue.phi is not None else DEFAULT_PHI

  placed_nitrogen = residue.nitrogen is None
  if placed_nitrogen:
    residue.nitrogen = compute_position(
      prev_carbon, prev_carbon - prev_carbon_alpha, prev_n_ca, C_N_LENGTH, BOND_ANGLE_CA_C_N, psi
    )
  placed_carbon_alpha = residue.carbon_alpha is None
  if placed_carbon_alpha:
    residue.carbon_alpha = compute_position(
      residue.nitrogen, residue.nitrogen - prev_carbon, prev_carbon - prev_carbon_alpha, N_CA_LENGTH, BOND_ANGLE_C_N_CA, omega
    )
  placed_carbon = residue.carbon is None
  if placed_carbon:
    residue.carbon = compute_position(
      residue.carbon_alpha, residue.carbon_alpha - residue.nitrogen, residue.nitrogen - prev_carbon, CA_C_LENGTH, BOND_ANGLE_N_CA_C, phi
    )

  if previous_residue is None:
    return residue

  # pre-existing atoms keep their own geometry, so record what they actually form
  if previous_residue.psi is None:
    previous_residue.psi = psi if placed_nitrogen else dihedral(previous_residue.nitrogen, prev_carbon_alpha, prev_carbon, residue.nitrogen)
  if residue.omega is None:
    residue.omega = omega if placed_carbon_alpha else dihedral(prev_carbon_alpha, prev_carbon, residue.nitrogen, residue.carbon_alpha)
  if residue.phi is None:
    residue.phi = phi if placed_carbon else dihedral(prev_carbon, residue.nitrogen, residue.carbon_alpha, residue.carbon)
  return residue


def position(peptide: Peptide, start_position: Optional[np.ndarray] = None) -> Peptide:
  """Position every residue of a peptide in chain order.

  Parameters:
    peptide: Peptide to complete, mutated in place
    start_position: Position of the virtual carbon preceding the chain, defaults to the origin (pm)

  Returns:
    The same peptide

  """
  if start_position is None:
    start_position = np.zeros(3)
  previous = None
  for i, residue in enumerate(peptide):
    try:
      if previous is None:
        position_residue(residue, start_position=start_position)
      else:
        position_residue(residue, previous_residue=previous)
    except ConfigurationError as e:
      if e.residue_index is None:
        e.residue_index = i
      raise
    previous = residue
  logger.debug(f"Positioned backbone of {len(peptide)} residues")
  return peptide
