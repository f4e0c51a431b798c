"""Simulation and agent configuration."""

import math
from dataclasses import dataclass, field, fields, replace

from .errors import ConfigError

# ---------------- DEFAULTS ----------------
POPULATION = 50
SIM_SPEED = 1
LAPS = 5
HIDDEN_SIZE = 8
OUTPUT_SIZE = 4  # accelerate, left, right, brake
MUTATION_RATE = 0.1
ELITE_COUNT = 5
STAGNATION_LIMIT = 180
CURVE_RESOLUTION = 20

ATTRIBUTE_BUDGET = 12
ATTRIBUTE_MIN = 1
ATTRIBUTE_MAX = 10
MAX_BEARING_INPUTS = 2
# ------------------------------------------


@dataclass
class AgentProfile:
    """Sensor layout and handling of one agent variant.

    The three attribute points share a fixed budget and map linearly onto
    the physical constants used by ``Car.update``.
    """
    name: str = "car"
    sensor_count: int = 5
    sensor_spread: float = math.pi / 2
    ray_length: float = 100.0
    bearing_inputs: int = 2
    accel_points: int = 4
    steer_points: int = 4
    speed_points: int = 4
    friction: float = 0.05
    reverse_friction: float = 0.1
    sprite: str = "car"

    @property
    def max_speed(self):
        return self.speed_points * 1.25

    @property
    def acceleration(self):
        return self.accel_points * 0.05

    @property
    def turn_speed(self):
        return self.steer_points * 0.0075

    @property
    def input_size(self):
        return self.sensor_count + self.bearing_inputs

    def sensor_angles(self):
        """Ray offsets from the heading, evenly spread and centred."""
        if self.sensor_count == 1:
            return [0.0]
        step = self.sensor_spread / (self.sensor_count - 1)
        return [-self.sensor_spread / 2 + i * step for i in range(self.sensor_count)]

    def validate(self):
        if self.sensor_count < 1:
            raise ConfigError(f"sensor_count must be >= 1, got {self.sensor_count}")
        if self.ray_length <= 0:
            raise ConfigError(f"ray_length must be positive, got {self.ray_length}")
        if not 0 <= self.bearing_inputs <= MAX_BEARING_INPUTS:
            raise ConfigError(
                f"bearing_inputs must be in 0..{MAX_BEARING_INPUTS}, got {self.bearing_inputs}")
        points = (self.accel_points, self.steer_points, self.speed_points)
        for value in points:
            if not ATTRIBUTE_MIN <= value <= ATTRIBUTE_MAX:
                raise ConfigError(
                    f"attribute points must be in [{ATTRIBUTE_MIN}, {ATTRIBUTE_MAX}], got {value}")
        if sum(points) != ATTRIBUTE_BUDGET:
            raise ConfigError(
                f"attribute points must sum to {ATTRIBUTE_BUDGET}, got {sum(points)}")
        if self.friction < 0 or self.reverse_friction < 0:
            raise ConfigError("friction must be non-negative")
        return self


AGENT_PRESETS = {
    "car": AgentProfile(),
    "cat": AgentProfile(
        name="cat",
        sensor_count=7,
        sensor_spread=math.pi * 2 / 3,
        ray_length=80.0,
        bearing_inputs=1,
        accel_points=3,
        steer_points=6,
        speed_points=3,
        friction=0.04,
        reverse_friction=0.08,
        sprite="cat",
    ),
}


def get_profile(name):
    try:
        return replace(AGENT_PRESETS[name])
    except KeyError:
        raise ConfigError(
            f"unknown agent profile {name!r}, expected one of {sorted(AGENT_PRESETS)}") from None


@dataclass
class SimConfig:
    population_size: int = POPULATION
    sim_speed: int = SIM_SPEED
    laps: int = LAPS
    hidden_size: int = HIDDEN_SIZE
    output_size: int = OUTPUT_SIZE
    mutation_rate: float = MUTATION_RATE
    elite_count: int = ELITE_COUNT
    stagnation_limit: int = STAGNATION_LIMIT
    curve_resolution: int = CURVE_RESOLUTION
    batched: bool = False
    seed: object = None
    profile: AgentProfile = field(default_factory=AgentProfile)

    @property
    def input_size(self):
        return self.profile.input_size

    def validate(self):
        checks = [
            ("population_size", self.population_size >= 1),
            ("sim_speed", self.sim_speed >= 1),
            ("laps", self.laps >= 1),
            ("hidden_size", self.hidden_size >= 1),
            ("output_size", self.output_size == OUTPUT_SIZE),
            ("mutation_rate", 0.0 <= self.mutation_rate <= 1.0),
            ("elite_count", self.elite_count >= 1),
            ("stagnation_limit", self.stagnation_limit >= 1),
            ("curve_resolution", self.curve_resolution >= 1),
        ]
        for name, ok in checks:
            if not ok:
                raise ConfigError(f"invalid {name}: {getattr(self, name)!r}")
        self.profile.validate()
        return self

    @classmethod
    def from_dict(cls, data):
        """Build a validated config from plain data (UI or JSON input)."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"unknown config keys: {sorted(unknown)}")
        kwargs = dict(data)
        profile = kwargs.get("profile")
        if isinstance(profile, str):
            kwargs["profile"] = get_profile(profile)
        elif isinstance(profile, dict):
            base = get_profile(profile.get("name", "car"))
            profile_keys = {f.name for f in fields(AgentProfile)}
            bad = set(profile) - profile_keys
            if bad:
                raise ConfigError(f"unknown profile keys: {sorted(bad)}")
            kwargs["profile"] = replace(base, **profile)
        elif profile is not None and not isinstance(profile, AgentProfile):
            raise ConfigError(f"profile must be a preset name or mapping, got {profile!r}")
        return cls(**kwargs).validate()
