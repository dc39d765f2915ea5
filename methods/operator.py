# methods/operator.py
import math
from abc import ABC, abstractmethod

from utils.states import SimulationState

# MAGIC CONSTANTS
MAX_SUBCYCLES = 1000


class Operator(ABC):
    """
    Explicit physics operator. `apply` returns a successor state and never
    modifies the state it is given.
    """

    name = "operator"
    modifies_fluid = False  # Fluid mass/energy change, so the coupler re-closes the EOS

    @abstractmethod
    def apply(self, state: SimulationState, dt: float) -> SimulationState:
        pass

    @abstractmethod
    def get_max_stable_dt(self, state: SimulationState) -> float:
        pass

    def get_subcycle_count(self, state: SimulationState, dt: float) -> int:
        max_dt = self.get_max_stable_dt(state)
        if not math.isfinite(max_dt) or dt <= max_dt:
            return 1
        return min(math.ceil(dt / max_dt), MAX_SUBCYCLES)

    def affected_flow_nodes(self, state: SimulationState):
        """Flow nodes whose fluid `apply` may change; None means all of them."""
        return None
