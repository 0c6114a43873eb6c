"""
Time stepped folding simulation driven by pluggable force fields.
"""

import math
import threading
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

import numpy as np
from tqdm import tqdm

from peptidefold.constants import ATOM_MASSES, BACKBONE_ATOMS, BACKBONE_ELEMENTS, PSEUDO_FORCE_SCALE
from peptidefold.exceptions import ConfigurationError, FoldingError, NumericalInstabilityError
from peptidefold.forces import ForceField
from peptidefold.log import logger
from peptidefold.measurements import measure_angles
from peptidefold.peptide import ForceRecords, Peptide


### CONFIG ###
@dataclass(frozen=True)
class SimulationConfig:
  """Settings of one folding run.

  Parameters:
    simulation_time: Total simulated duration in fs
    time_step: Duration of one integration step in fs
    reset_velocity_after_each_step: Discard velocities after every step (steepest descent) instead of keeping momentum
    force_fields: Additional force fields, applied after the ones handed to the simulator
    force_scale: Da·pm/fs² per unit of pseudo-force
    show_progress: Display a tqdm progress bar
  """

  simulation_time: float = 10000.0
  time_step: float = 2.0
  reset_velocity_after_each_step: bool = True
  force_fields: Tuple[ForceField, ...] = ()
  force_scale: float = PSEUDO_FORCE_SCALE
  show_progress: bool = False

  def __post_init__(self):
    if not self.time_step > 0:
      raise ConfigurationError(f"time_step must be positive, got {self.time_step}")
    if not self.simulation_time >= 0:
      raise ConfigurationError(f"simulation_time must not be negative, got {self.simulation_time}")
    if not self.force_scale > 0:
      raise ConfigurationError(f"force_scale must be positive, got {self.force_scale}")
    object.__setattr__(self, "force_fields", tuple(self.force_fields))

  @classmethod
  def from_dict(cls, options: Mapping[str, Any]) -> "SimulationConfig":
    """Build a config from a plain mapping, rejecting unknown keys."""
    known = {field.name for field in fields(cls)}
    unknown = set(options) - known
    if unknown:
      raise ConfigurationError(f"Unknown simulation options {sorted(unknown)}")
    return cls(**options)

  @property
  def step_count(self) -> int:
    """Number of steps needed for the elapsed time to reach ``simulation_time``."""
    return math.ceil(self.simulation_time / self.time_step - 1e-9)


class SimulationState(Enum):
  IDLE = "idle"
  RUNNING = "running"
  COMPLETED = "completed"
  FAILED = "failed"
  CANCELLED = "cancelled"


### SIMULATOR ###
class FoldingSimulator:
  def __init__(self, peptide: Peptide, config: Optional[SimulationConfig] = None, *force_fields: ForceField):
    """Integrates a positioned peptide under the combined force of several force fields.

    Each step every force field sees the same unmodified geometry, the summed
    forces then update velocities and positions (``v += F/m·dt``,
    ``x += v·dt``). A simulator runs at most once, and a peptide can only be
    simulated by one simulator at a time.

    Parameters:
      peptide: Fully positioned peptide, mutated in place
      config: Run settings, defaults to :class:`SimulationConfig`
      force_fields: Force fields to apply, followed by ``config.force_fields``
    """
    self.peptide = peptide
    self.config = config if config is not None else SimulationConfig()
    self.force_fields = tuple(force_fields) + self.config.force_fields
    self.state = SimulationState.IDLE
    self.step = 0
    self.elapsed = 0.0
    self._masses = np.array([ATOM_MASSES[BACKBONE_ELEMENTS[atom]] for atom in BACKBONE_ATOMS])[None, :, None]
    self._cancel_event = threading.Event()
    self._state_lock = threading.Lock()
    self._future = None
    self._thread = None

  def __repr__(self):
    return f"<FoldingSimulator {self.peptide.sequence} {self.state.value} t={self.elapsed}fs>"

  def run(self) -> Peptide:
    """Run the whole simulation on the calling thread.

    Returns:
      The simulated peptide

    Raises:
      ConfigurationError: If the simulator was already started, the peptide is
        busy with another simulation or not fully positioned
      FoldingError: Any error raised while computing forces or integrating

    """
    self._begin()
    return self._execute()

  def start(self) -> Future:
    """Run the simulation on a background thread.

    Returns:
      A future resolved with the peptide, with the originating error, or
      cancelled when :meth:`cancel` stopped the run

    """
    self._begin()
    self._future = Future()
    self._future.add_done_callback(self._on_future_done)
    self._thread = threading.Thread(target=self._run_in_background, name="peptidefold-simulation", daemon=True)
    self._thread.start()
    return self._future

  def wait(self, timeout: Optional[float] = None) -> Peptide:
    """Block until a run started with :meth:`start` finishes and return its peptide."""
    if self._future is None:
      raise ConfigurationError("The simulation was not started in the background")
    return self._future.result(timeout)

  def cancel(self):
    """Request the run to stop. Takes effect at the next step boundary."""
    self._cancel_event.set()

  @property
  def future(self) -> Optional[Future]:
    return self._future

  def _begin(self):
    with self._state_lock:
      if self.state is not SimulationState.IDLE:
        raise ConfigurationError(f"Simulation was already started (state {self.state.value})")
      if not self.peptide.is_positioned():
        raise ConfigurationError("The peptide must be fully positioned before simulating")
      if not self.peptide._simulation_lock.acquire(blocking=False):
        raise ConfigurationError("The peptide is already being simulated")
      self.state = SimulationState.RUNNING
    logger.info(
      f"Simulating {self.peptide.sequence} for {self.config.simulation_time}fs "
      f"in steps of {self.config.time_step}fs with {len(self.force_fields)} force fields"
    )

  def _execute(self) -> Peptide:
    try:
      cancelled = self._integrate()
      measure_angles(self.peptide, update=True)
    except Exception as e:
      self.state = SimulationState.FAILED
      logger.error(f"Simulation of {self.peptide.sequence} failed: {e}")
      raise
    finally:
      self.peptide._simulation_lock.release()

    if cancelled:
      self.state = SimulationState.CANCELLED
      logger.info(f"Simulation cancelled after {self.elapsed}fs ({self.step} steps)")
    else:
      self.state = SimulationState.COMPLETED
      logger.info(f"Simulation completed after {self.elapsed}fs ({self.step} steps)")
    return self.peptide

  def _run_in_background(self):
    future = self._future
    try:
      try:
        peptide = self._execute()
      except Exception as e:
        future.set_exception(e)
        return
      if self.state is SimulationState.CANCELLED:
        future.cancel()
      else:
        future.set_result(peptide)
    except InvalidStateError:
      # the caller cancelled the future while the last step was running
      logger.debug(f"Simulation of {self.peptide.sequence} finished as {self.state.name} after its future was cancelled")

  def _on_future_done(self, future: Future):
    if future.cancelled():
      self._cancel_event.set()

  def _integrate(self) -> bool:
    """Advance the peptide step by step. Returns True if the run was cancelled."""
    config = self.config
    dt = config.time_step
    with tqdm(total=config.step_count, desc="Folding", unit="step", disable=not config.show_progress) as progress:
      for step in range(config.step_count):
        if self._cancel_event.is_set():
          return True
        try:
          forces = self._gather_forces()
        except FoldingError as e:
          if e.step is None:
            e.step = step
          raise

        velocities = self.peptide.velocities + forces.forces * config.force_scale / self._masses * dt
        coords = self.peptide.backbone() + velocities * dt
        finite = np.isfinite(coords).all(axis=(1, 2))
        if not finite.all():
          raise NumericalInstabilityError(
            "Non-finite backbone position", residue_index=int(np.argmin(finite)), step=step
          )

        self.peptide.set_backbone(coords)
        if config.reset_velocity_after_each_step:
          self.peptide.reset_velocities()
        else:
          self.peptide.velocities = velocities
        self.step = step + 1
        self.elapsed += dt
        progress.update(1)
        if self.step % 500 == 0:
          logger.debug(f"Step {self.step}: {self.elapsed}fs simulated")
    return False

  def _gather_forces(self) -> ForceRecords:
    forces = ForceRecords.for_peptide(self.peptide)
    for force_field in self.force_fields:
      forces.merge(force_field.compute_forces(self.peptide))
    return forces
