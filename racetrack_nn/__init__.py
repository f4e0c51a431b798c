"""Neuro-evolution of ray-sensing cars around a 2D race track."""

from .car import AgentStatus, Car
from .config import AGENT_PRESETS, AgentProfile, SimConfig, get_profile
from .errors import ConfigError, DimensionMismatch, RacetrackError, TrackError
from .evolution import EliteArchive, Population, SimulationState
from .genome import NeuralNet, sigmoid
from .matrix import Matrix
from .track import Checkpoint, Track, default_track

__version__ = "0.1.0"
