"""
Loading peptide backbones from structure files and writing them back,
using BioPython under the hood. Structure files are in Ångström while
peptides are in picometres.
"""

from pathlib import Path
from typing import Optional, Union

import numpy as np
from Bio.PDB import PDBIO, MMCIFParser, PDBParser
from Bio.PDB.mmcifio import MMCIFIO
from Bio.PDB.Polypeptide import is_aa
from Bio.PDB.Structure import Structure
from Bio.PDB.StructureBuilder import StructureBuilder

from peptidefold.constants import BACKBONE_ATOMS, BACKBONE_ELEMENTS, BACKBONE_FIELDS
from peptidefold.log import logger
from peptidefold.peptide import Peptide, Residue

# picometres per Ångström
PM_PER_ANGSTROM = 100.0


### FUNCTIONS ###
def _infer_format(fpath: Union[str, Path], format: str) -> str:
  format = format.lower()
  if format == "auto":
    if str(fpath).lower().endswith(".pdb"):
      return "pdb"
    elif str(fpath).lower().endswith(".cif") or str(fpath).lower().endswith(".mmcif"):
      return "mmcif"
    raise ValueError("Failed to infer format. Please specify format explicitly as 'pdb' or 'mmcif'.")
  if format not in ("pdb", "mmcif"):
    raise ValueError("Format must be 'pdb' or 'mmcif'.")
  return format


def read_pdb(fpath: Union[str, Path], chain: Optional[str] = None, model: int = 0, format: str = "auto") -> Peptide:
  """Load the backbone of one chain from a PDB or mmCIF file.

  Only standard amino acids are kept. Backbone atoms missing from the file
  are left unset so they can be reconstructed later.

  Parameters:
    fpath: Path to the structure file
    chain: Chain ID to load, defaults to the first chain of the model
    model: Model ID to load
    format: File format of the input ("pdb", "mmcif", or "auto" to infer format from extension)

  Returns:
    A peptide with positions converted to picometres

  """
  format = _infer_format(fpath, format)
  parser = PDBParser(QUIET=True) if format == "pdb" else MMCIFParser(QUIET=True)
  structure = parser.get_structure("peptide", str(fpath))

  models = {m.id: m for m in structure}
  if model not in models:
    raise ValueError(f"Model {model} not found in {fpath}")
  chains = {c.id: c for c in models[model]}
  if not chains:
    raise ValueError(f"Model {model} of {fpath} contains no chains")
  if chain is None:
    chain = next(iter(chains))
  if chain not in chains:
    raise ValueError(f"Chain {chain} not found in {fpath}")

  residues = []
  for res in chains[chain]:
    if not is_aa(res, standard=True):
      continue
    residue = Residue(res.get_resname())
    for atom_name, field in zip(BACKBONE_ATOMS, BACKBONE_FIELDS):
      if atom_name in res:
        setattr(residue, field, np.asarray(res[atom_name].coord, dtype=np.float64) * PM_PER_ANGSTROM)
    residues.append(residue)
  if not residues:
    raise ValueError(f"Chain {chain} of {fpath} contains no standard amino acids")
  logger.debug(f"Loaded {len(residues)} residues from chain {chain} of {fpath}")
  return Peptide(residues)


def to_structure(peptide: Peptide, chain: str = "A") -> Structure:
  """Build a BioPython structure holding every positioned backbone atom.

  Parameters:
    peptide: Peptide to convert
    chain: Chain ID to use

  Returns:
    A ``Bio.PDB.Structure.Structure`` with positions in Ångström

  """
  builder = StructureBuilder()
  builder.init_structure("peptide")
  builder.init_model(0)
  builder.init_chain(chain)
  builder.init_seg("    ")
  serial = 1
  for resseq, residue in enumerate(peptide, start=1):
    builder.init_residue(residue.amino_acid, " ", resseq, " ")
    for atom_name, position in zip(BACKBONE_ATOMS, residue.positions()):
      if position is None:
        continue
      builder.init_atom(
        atom_name,
        position / PM_PER_ANGSTROM,
        0.0,
        1.0,
        " ",
        f" {atom_name:<3}",
        serial_number=serial,
        element=BACKBONE_ELEMENTS[atom_name],
      )
      serial += 1
  return builder.get_structure()


def write_pdb(peptide: Peptide, fpath: Union[str, Path], chain: str = "A", format: str = "auto"):
  """Save the backbone of a peptide as a PDB or mmCIF file.
  Will overwrite any existing files.

  Parameters:
    peptide: Peptide to save
    fpath: File path where you want to save the structure
    chain: Chain ID to use
    format: File format to save in, either 'pdb' or 'mmcif', set to 'auto' to infer format from extension.

  """
  format = _infer_format(fpath, format)
  structure = to_structure(peptide, chain=chain)
  if format == "pdb":
    io = PDBIO()
    io.set_structure(structure)
    io.save(str(fpath))
  else:
    mmcif_io = MMCIFIO()
    mmcif_io.set_structure(structure)
    mmcif_io.save(str(fpath))
