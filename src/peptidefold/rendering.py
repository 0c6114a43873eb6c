"""
Provides functions related to plotting peptide backbones and Ramachandran data.
"""

from typing import Optional

import matplotlib.pyplot as plt
import numpy as np

from peptidefold.measurements import measure_angles
from peptidefold.peptide import Peptide
from peptidefold.ramachandran import EmpiricalRamachandranDistribution, FixedRamachandranDistribution, RamachandranDistribution


def plot_ramachandran(
  peptide: Peptide,
  distribution: Optional[RamachandranDistribution] = None,
  ax: Optional[plt.Axes] = None,
  cmap: str = "Blues",
  color: str = "tab:red",
) -> plt.Axes:
  """Scatter the measured (phi, psi) pairs of a peptide.

  Residues without both angles (the chain termini) are skipped. Empirical
  distributions are drawn as a filled density map underneath, fixed
  distributions as a star at their target.

  Parameters:
    peptide: Positioned peptide to plot
    distribution: Optional distribution drawn behind the points
    ax: Axes to draw on, a new figure is created when omitted
    cmap: Colormap of the density map
    color: Color of the residue markers

  Returns:
    The axes that were drawn on

  """
  if ax is None:
    _, ax = plt.subplots(figsize=(6, 6))

  if isinstance(distribution, EmpiricalRamachandranDistribution):
    PSI, PHI = np.meshgrid(distribution.psi_grid, distribution.phi_grid)
    ax.contourf(PHI, PSI, distribution.density, levels=20, cmap=cmap)
  elif isinstance(distribution, FixedRamachandranDistribution):
    ax.scatter([distribution.phi], [distribution.psi], marker="*", s=200, c="gold", edgecolors="black", label="target", zorder=3)

  points = np.array([(a.phi, a.psi) for a in measure_angles(peptide) if a.phi is not None and a.psi is not None])
  if len(points):
    ax.scatter(points[:, 0], points[:, 1], c=color, s=25, label=peptide.sequence, zorder=4)

  ax.set_xlim(-180, 180)
  ax.set_ylim(-180, 180)
  ax.set_xticks(range(-180, 181, 60))
  ax.set_yticks(range(-180, 181, 60))
  ax.axhline(0, color="grey", linewidth=0.5)
  ax.axvline(0, color="grey", linewidth=0.5)
  ax.set_xlabel("phi (°)")
  ax.set_ylabel("psi (°)")
  title = "Ramachandran plot"
  if distribution is not None:
    title += f" ({distribution.amino_acid})"
  ax.set_title(title)
  if len(points) or isinstance(distribution, FixedRamachandranDistribution):
    ax.legend(loc="upper right")
  return ax
