"""
This file contains constants.

Units used across the package: lengths in picometres (pm), time in
femtoseconds (fs), angles in degrees, masses in Daltons (Da).
"""

from dataclasses import dataclass
from typing import Dict, Tuple

## Backbone Atoms
# Names of the backbone atoms tracked per residue, in storage order
BACKBONE_ATOMS = ("N", "CA", "C")
# Element of every backbone atom
BACKBONE_ELEMENTS = {"N": "N", "CA": "C", "C": "C"}
# Attribute names on Residue for every backbone atom, same order as BACKBONE_ATOMS
BACKBONE_FIELDS = ("nitrogen", "carbon_alpha", "carbon")


# Amino acid Record class
@dataclass(frozen=True)
class AARecord:
  ordinal: int  # position in STANDARD_AA_RECORDS, used for tuple lookups
  code: str  # 1-letter code
  abr: str  # 3-letter abbreviation
  name: str  # full name (upper-cased)


## Standard amino acids keyed by ABR
# Ordinals are fixed, any tuple indexed by amino acid ordinal relies on this order
AA_RECORDS: Dict[str, AARecord] = {
  "ALA": AARecord(0, "A", "ALA", "ALANINE"),
  "ARG": AARecord(1, "R", "ARG", "ARGININE"),
  "ASN": AARecord(2, "N", "ASN", "ASPARAGINE"),
  "ASP": AARecord(3, "D", "ASP", "ASPARTIC ACID"),
  "CYS": AARecord(4, "C", "CYS", "CYSTEINE"),
  "GLN": AARecord(5, "Q", "GLN", "GLUTAMINE"),
  "GLU": AARecord(6, "E", "GLU", "GLUTAMIC ACID"),
  "GLY": AARecord(7, "G", "GLY", "GLYCINE"),
  "HIS": AARecord(8, "H", "HIS", "HISTIDINE"),
  "ILE": AARecord(9, "I", "ILE", "ISOLEUCINE"),
  "LEU": AARecord(10, "L", "LEU", "LEUCINE"),
  "LYS": AARecord(11, "K", "LYS", "LYSINE"),
  "MET": AARecord(12, "M", "MET", "METHIONINE"),
  "PHE": AARecord(13, "F", "PHE", "PHENYLALANINE"),
  "PRO": AARecord(14, "P", "PRO", "PROLINE"),
  "SER": AARecord(15, "S", "SER", "SERINE"),
  "THR": AARecord(16, "T", "THR", "THREONINE"),
  "TRP": AARecord(17, "W", "TRP", "TRYPTOPHAN"),
  "TYR": AARecord(18, "Y", "TYR", "TYROSINE"),
  "VAL": AARecord(19, "V", "VAL", "VALINE"),
}
STANDARD_AA_RECORDS: Tuple[AARecord, ...] = tuple(sorted(AA_RECORDS.values(), key=lambda rec: rec.ordinal))

# Alias map: every searchable token → ABR
# (1-letter codes, 3-letter codes, and names)
AA_ALIASES: Dict[str, str] = {}
for abr, rec in AA_RECORDS.items():
  AA_ALIASES[rec.code] = abr
  AA_ALIASES[abr] = abr
  AA_ALIASES[rec.name] = abr

## Covalent radii (pm)
# Source: Cordero et al. 2008, "Covalent radii revisited" (sp3 carbon)
COVALENT_RADII = {
  "C": 76.0,
  "N": 71.0,
  "O": 66.0,
}

## Backbone bond angles (degrees)
# Approximate planar peptide geometry used during reconstruction
BOND_ANGLE_CA_C_N = 116.2
BOND_ANGLE_C_N_CA = 121.7
BOND_ANGLE_N_CA_C = 111.2

## Default dihedral angles (degrees)
# Used for reconstruction whenever a residue has no value yet
DEFAULT_OMEGA = 180.0
DEFAULT_PHI = 0.0
DEFAULT_PSI = 0.0

## Atomic masses (Da)
# Standard atomic weights, IUPAC 2013
ATOM_MASSES = {
  "C": 12.011,
  "N": 14.007,
  "O": 15.999,
}

## Pseudo-force scale
# Converts one unit of the dimensionless pseudo-forces produced by the force
# fields into Da·pm/fs² before integration
PSEUDO_FORCE_SCALE = 3.0


def bond_length(element1: str, element2: str) -> float:
  """Estimate the length of a covalent bond as the sum of both radii.

  Parameters:
    element1: Element symbol of the first atom
    element2: Element symbol of the second atom

  Returns:
    Bond length in picometres

  """
  try:
    return COVALENT_RADII[element1.upper()] + COVALENT_RADII[element2.upper()]
  except KeyError as e:
    raise ValueError(f"No covalent radius known for element {e.args[0]}")
