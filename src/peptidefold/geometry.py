"""
Vector geometry for placing backbone atoms and measuring dihedrals.
All public angles are in degrees, lengths in picometres.
"""

import numpy as np

from peptidefold.exceptions import GeometryError

# Vectors shorter than this are treated as zero length
EPSILON = 1e-9


### FUNCTIONS ###
def normalize(vector: np.ndarray) -> np.ndarray:
  """Return the unit vector pointing along ``vector``.

  Parameters:
    vector: Any 3D vector

  Returns:
    A new array of length one

  Raises:
    GeometryError: If the vector has (near) zero length

  """
  vector = np.asarray(vector, dtype=np.float64)
  length = np.linalg.norm(vector)
  if not np.isfinite(length) or length < EPSILON:
    raise GeometryError(f"Cannot normalize vector {vector} of length {length}")
  return vector / length


def compute_position(
  current_position: np.ndarray,
  ref_vector1: np.ndarray,
  ref_vector2: np.ndarray,
  bond_length: float,
  bond_angle: float,
  torsion_angle: float,
) -> np.ndarray:
  """Place a new atom bonded to ``current_position``.

  A right handed local frame is built where z follows ``ref_vector1`` (the bond
  leading into the current atom), x is the negated component of ``ref_vector2``
  perpendicular to z, and y = z × x. The new bond is expressed in spherical
  coordinates with a polar angle of ``180 - bond_angle`` and an azimuth of
  ``torsion_angle`` before being rotated into world space.

  With ``ref_vector1 = B - A`` and ``ref_vector2 = A - P`` for the three atoms
  preceding the new atom ``D`` (so ``B`` is ``current_position``), the angle
  A-B-D equals ``bond_angle`` and the dihedral P-A-B-D equals ``torsion_angle``.

  Parameters:
    current_position: Position of the atom the new atom bonds to
    ref_vector1: Bond vector ending at the current atom
    ref_vector2: Bond vector preceding ``ref_vector1``
    bond_length: Distance between the current and the new atom
    bond_angle: Angle between the previous bond and the new bond (degrees)
    torsion_angle: Dihedral around ``ref_vector1`` (degrees)

  Returns:
    Position of the new atom

  Raises:
    GeometryError: If the reference vectors are parallel or zero length

  """
  z_axis = normalize(ref_vector1)
  ref_vector2 = np.asarray(ref_vector2, dtype=np.float64)
  perpendicular = ref_vector2 - np.dot(ref_vector2, z_axis) * z_axis
  try:
    x_axis = -normalize(perpendicular)
  except GeometryError:
    raise GeometryError("Reference vectors are parallel, local frame is undefined")
  y_axis = np.cross(z_axis, x_axis)

  polar = np.radians(180.0 - bond_angle)
  azimuth = np.radians(torsion_angle)
  local_direction = np.array(
    [
      np.sin(polar) * np.cos(azimuth),
      np.sin(polar) * np.sin(azimuth),
      np.cos(polar),
    ]
  )
  frame = np.column_stack((x_axis, y_axis, z_axis))
  return np.asarray(current_position, dtype=np.float64) + bond_length * (frame @ local_direction)


def dihedral(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> float:
  """Signed dihedral angle defined by four points (IUPAC convention).

  Parameters:
    p0: First point
    p1: Second point, start of the rotation axis
    p2: Third point, end of the rotation axis
    p3: Fourth point

  Returns:
    Angle in degrees within (-180, 180]

  Raises:
    GeometryError: If three consecutive points are collinear

  """
  b1 = np.asarray(p1, dtype=np.float64) - np.asarray(p0, dtype=np.float64)
  b2 = np.asarray(p2, dtype=np.float64) - np.asarray(p1, dtype=np.float64)
  b3 = np.asarray(p3, dtype=np.float64) - np.asarray(p2, dtype=np.float64)
  n1 = np.cross(b1, b2)
  n2 = np.cross(b2, b3)
  b2_length = np.linalg.norm(b2)
  if b2_length < EPSILON or np.linalg.norm(n1) < EPSILON or np.linalg.norm(n2) < EPSILON:
    raise GeometryError("Dihedral is undefined for collinear points")
  angle = np.degrees(np.arctan2(b2_length * np.dot(b1, n2), np.dot(n1, n2)))
  if angle <= -180.0:
    angle += 360.0
  return float(angle)


def bond_angle(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> float:
  """Angle p0-p1-p2 in degrees."""
  u = normalize(np.asarray(p0, dtype=np.float64) - np.asarray(p1, dtype=np.float64))
  v = normalize(np.asarray(p2, dtype=np.float64) - np.asarray(p1, dtype=np.float64))
  return float(np.degrees(np.arccos(np.clip(np.dot(u, v), -1.0, 1.0))))


def wrap_angle(angle: float) -> float:
  """Wrap an angle in degrees into [-180, 180)."""
  return (angle + 180.0) % 360.0 - 180.0


def angle_difference(a: float, b: float) -> float:
  """Shortest signed difference ``a - b`` between two angles in degrees."""
  return wrap_angle(a - b)
