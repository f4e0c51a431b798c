"""A single evolving agent: pose, sensors, progress and its genome."""

import enum
import logging
import math

import numpy as np

from .config import AgentProfile
from .geometry import normalize_angle
from .snapshot import AgentSnapshot

log = logging.getLogger(__name__)

CHECKPOINT_SCORE = 1000.0
FINISH_BONUS = 10000.0
TIME_PENALTY = 0.1


class AgentStatus(str, enum.Enum):
    ACTIVE = "active"
    DEAD = "dead"
    FINISHED = "finished"


class Car:
    """One agent. The same class drives every variant; the profile decides
    sensor layout and handling."""

    def __init__(self, genome, track, profile=None, agent_id=0, color_hue=0.0):
        self.genome = genome
        self.profile = profile or AgentProfile()
        self.agent_id = agent_id
        self.color_hue = color_hue
        self.sensor_angles = np.array(self.profile.sensor_angles())
        self.reset(track)

    def __repr__(self):
        return (f"Car(id={self.agent_id}, status={self.status.value}, "
                f"fitness={self.fitness:.1f}, lap={self.lap}, cp={self.checkpoint_index})")

    def reset(self, track):
        """Back to the start line; the genome is kept."""
        self.x = track.spawn_x
        self.y = track.spawn_y
        self.angle = track.spawn_angle
        self.speed = 0.0
        self.readings = np.zeros(self.profile.input_size)
        self.checkpoint_index = 0
        self.lap = 0
        self.ticks = 0
        self.fitness = 0.0
        self.last_fitness = 0.0
        self.stagnant_ticks = 0
        self.status = AgentStatus.ACTIVE

    @property
    def active(self):
        return self.status is AgentStatus.ACTIVE

    @property
    def dead(self):
        return self.status is AgentStatus.DEAD

    @property
    def finished(self):
        return self.status is AgentStatus.FINISHED

    def kill(self, reason):
        self.status = AgentStatus.DEAD
        log.debug("car %d died (%s) at tick %d, fitness %.1f",
                  self.agent_id, reason, self.ticks, self.fitness)

    def finish(self):
        self.status = AgentStatus.FINISHED
        log.debug("car %d finished at tick %d", self.agent_id, self.ticks)

    # ---------------- sensing ----------------

    def sense(self, track):
        """Wall readings (1 = touching, 0 = nothing in range) then checkpoint bearings."""
        p = self.profile
        dists = track.cast_rays((self.x, self.y), self.angle + self.sensor_angles, p.ray_length)
        walls = 1.0 - dists / p.ray_length

        bearings = np.empty(p.bearing_inputs)
        count = len(track.checkpoints)
        for i in range(p.bearing_inputs):
            cp = track.checkpoints[(self.checkpoint_index + i) % count]
            angle_to_cp = math.atan2(cp.y - self.y, cp.x - self.x)
            bearings[i] = normalize_angle(angle_to_cp - self.angle) / math.pi

        self.readings = np.concatenate([walls, bearings])
        return self.readings

    def get_inputs(self, state):
        return self.sense(state.track)

    # ---------------- control ----------------

    def apply_outputs(self, outputs, state):
        """Threshold the genome outputs, integrate one tick, then score."""
        if not self.active:
            return
        p = self.profile
        self.ticks += 1

        forward = outputs[0] > 0.5
        left = outputs[1] > 0.5
        right = outputs[2] > 0.5
        brake = outputs[3] > 0.5

        if forward:
            self.speed += p.acceleration
        if brake:
            self.speed -= p.acceleration * 2
        if left:
            self.angle -= p.turn_speed
        if right:
            self.angle += p.turn_speed

        if self.speed > 0:
            self.speed = max(0.0, self.speed - p.friction)
        elif self.speed < 0:
            self.speed = min(0.0, self.speed + p.reverse_friction)
        self.speed = max(-p.max_speed / 2, min(p.max_speed, self.speed))

        self.x += math.cos(self.angle) * self.speed
        self.y += math.sin(self.angle) * self.speed

        track = state.track
        if track.is_off_track((self.x, self.y)):
            self.kill("off track")
            return

        track.checkpoint_reached(self, state.config.laps)
        self.fitness = self.compute_fitness(track)
        if self.finished:
            return

        if self.fitness > self.last_fitness:
            self.last_fitness = self.fitness
            self.stagnant_ticks = 0
        else:
            self.stagnant_ticks += 1
            if self.stagnant_ticks >= state.config.stagnation_limit:
                self.kill("stagnant")

    def update(self, state):
        if not self.active:
            return
        inputs = self.get_inputs(state)
        self.apply_outputs(self.genome.predict(inputs), state)

    def compute_fitness(self, track):
        count = len(track.checkpoints)
        fitness = (self.lap * count + self.checkpoint_index) * CHECKPOINT_SCORE
        if self.finished:
            # Reward finishing quickly
            fitness += FINISH_BONUS - self.ticks
        else:
            cp = track.checkpoints[self.checkpoint_index]
            fitness += max(0.0, CHECKPOINT_SCORE - math.hypot(self.x - cp.x, self.y - cp.y))
        return fitness - self.ticks * TIME_PENALTY

    def snapshot(self):
        return AgentSnapshot(
            agent_id=self.agent_id,
            position=(float(self.x), float(self.y)),
            heading=float(self.angle),
            sensor_readings=tuple(float(r) for r in self.readings),
            fitness=float(self.fitness),
            status=self.status.value,
            color_hue=float(self.color_hue),
            lap=self.lap,
            checkpoint_index=self.checkpoint_index,
        )
