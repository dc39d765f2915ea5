# utils/time_parameters.py
# utility class that contains the operational schedules, the number of time steps and the values at each time step using linear interpolation

from dataclasses import dataclass, field
from typing import Dict, Optional
import numpy as np
import logging

logger = logging.getLogger(__name__)


@dataclass
class Schedule:
    times: np.ndarray  # [s]
    values: np.ndarray

    def __post_init__(self):
        self.times = np.asarray(self.times, dtype=float)
        self.values = np.asarray(self.values, dtype=float)
        if len(self.times) != len(self.values) or len(self.times) == 0:
            raise ValueError("A schedule needs as many values as times, and at least one point.")
        order = np.argsort(self.times)
        self.times = self.times[order]
        self.values = self.values[order]

    def value_at(self, t: float) -> float:
        return float(np.interp(t, self.times, self.values))

    def has_point_between(self, t_start: float, t_end: float) -> bool:
        """True if a schedule point lies in (t_start, t_end]."""
        return bool(np.any((self.times > t_start) & (self.times <= t_end)))


@dataclass
class TimeParameters:
    """
    Class that contains the operational schedules, the number of time steps and the values at each time step using linear interpolation.
    """

    time_step: float
    total_time: float
    num_time_steps: int

    pump_schedules: Dict[str, Schedule] = field(default_factory=dict)
    valve_schedules: Dict[str, Schedule] = field(default_factory=dict)
    rod_schedule: Optional[Schedule] = None

    def __post_init__(self):
        """
        Interpolate every schedule on the time grid.
        """
        if self.time_step <= 0:
            raise ValueError(f"Invalid time step: {self.time_step}. It must be positive.")
        self.time_values = np.arange(self.num_time_steps + 1) * self.time_step

        self.pump_speed_values = {
            pump_id: np.interp(self.time_values, schedule.times, schedule.values)
            for pump_id, schedule in self.pump_schedules.items()
        }
        self.valve_position_values = {
            valve_id: np.interp(self.time_values, schedule.times, schedule.values)
            for valve_id, schedule in self.valve_schedules.items()
        }
        self.rod_position_values = (
            np.interp(self.time_values, self.rod_schedule.times, self.rod_schedule.values)
            if self.rod_schedule is not None
            else None
        )

        logger.info(
            f"Time parameters initialized: {self.num_time_steps} steps of {self.time_step} s."
        )

    @classmethod
    def from_total_time(cls, time_step: float, total_time: float, **schedules) -> "TimeParameters":
        num_time_steps = int(np.ceil(total_time / time_step - 1e-9))
        return cls(time_step, total_time, num_time_steps, **schedules)
