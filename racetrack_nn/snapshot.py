"""Read-only views of the simulation handed to renderers and UIs."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class AgentSnapshot:
    agent_id: int
    position: Tuple[float, float]
    heading: float
    sensor_readings: Tuple[float, ...]
    fitness: float
    status: str
    color_hue: float
    lap: int
    checkpoint_index: int


@dataclass(frozen=True)
class GenerationInfo:
    generation: int
    best_fitness_overall: float
    best_fitness_holder_id: Optional[int]
    best_finish_ticks: Optional[int] = None


@dataclass(frozen=True)
class StateSnapshot:
    tick: int
    agents: Tuple[AgentSnapshot, ...]
    generation: GenerationInfo
    active_count: int
    track_progress_percent: float

    @property
    def leader(self):
        if not self.agents:
            return None
        return max(self.agents, key=lambda a: a.fitness)


@dataclass(frozen=True)
class GenerationStats:
    generation: int
    best_fitness: float
    mean_fitness: float
    finished_count: int
    archive_replaced: bool
    best_finish_ticks: Optional[int] = None
