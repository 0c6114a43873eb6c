"""
Errors raised while reconstructing or folding a peptide backbone.

Every error is fatal for the operation that raised it. Nothing is clamped,
retried, or replaced by a default value.
"""

from typing import Optional


class FoldingError(Exception):
  """Base class of every error raised by peptidefold.

  Parameters:
    message: Human readable description
    residue_index: Index of the offending residue within its chain, if known
    step: Simulation step during which the error occurred, if any

  """

  def __init__(self, message: str, residue_index: Optional[int] = None, step: Optional[int] = None):
    super().__init__(message)
    self.message = message
    self.residue_index = residue_index
    self.step = step

  def __str__(self):
    details = []
    if self.residue_index is not None:
      details.append(f"residue {self.residue_index}")
    if self.step is not None:
      details.append(f"step {self.step}")
    if details:
      return f"{self.message} ({', '.join(details)})"
    return self.message


class GeometryError(FoldingError):
  """Degenerate reference vectors, such as parallel bonds or a zero-length vector."""


class ConfigurationError(FoldingError):
  """Missing start frame, missing preference data, or invalid simulation settings."""


class NumericalInstabilityError(FoldingError):
  """A non-finite coordinate appeared while integrating."""
