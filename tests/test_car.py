import math

import numpy as np
import pytest

from racetrack_nn.car import AgentStatus, Car
from racetrack_nn.config import AgentProfile, get_profile
from racetrack_nn.genome import NeuralNet

from conftest import FixedGenome

IDLE = [0, 0, 0, 0]
FORWARD = [1, 0, 0, 0]
LEFT = [0, 1, 0, 0]
RIGHT = [0, 0, 1, 0]
BRAKE = [0, 0, 0, 1]


def make_car(track, outputs=IDLE, profile=None):
    return Car(FixedGenome(outputs), track, profile)


def test_starts_on_spawn(oval):
    car = make_car(oval)
    assert (car.x, car.y, car.angle) == (oval.spawn_x, oval.spawn_y, oval.spawn_angle)
    assert car.speed == 0
    assert car.status is AgentStatus.ACTIVE
    assert (car.checkpoint_index, car.lap, car.fitness, car.ticks) == (0, 0, 0.0, 0)


def test_sense_layout(oval):
    car = make_car(oval)
    readings = car.sense(oval)
    assert len(readings) == 7
    walls, bearings = readings[:5], readings[5:]
    assert np.all((walls >= 0) & (walls <= 1))
    assert np.all((bearings >= -1) & (bearings <= 1))


def test_sense_wall_reading_is_inverse_distance(oval):
    car = make_car(oval)
    car.angle = 0.0  # centre ray points at the inner wall 50 units away
    walls = car.sense(oval)[:5]
    assert walls[2] == pytest.approx(1 - 50 / 100)


def test_sense_bearing_points_at_next_checkpoint(oval):
    car = make_car(oval)
    car.checkpoint_index = 1
    bearings = car.sense(oval)[5:]
    assert bearings[0] == pytest.approx(0.0, abs=1e-9)


def test_cat_profile_sensor_count(oval):
    car = make_car(oval, profile=get_profile("cat"))
    assert len(car.sense(oval)) == 8


def test_accelerate(oval, state):
    car = make_car(oval, FORWARD)
    x0, y0 = car.x, car.y
    car.update(state)
    assert car.speed == pytest.approx(0.2 - 0.05)
    assert car.x == pytest.approx(x0 + math.cos(car.angle) * 0.15)
    assert car.y == pytest.approx(y0 + math.sin(car.angle) * 0.15)
    assert car.ticks == 1


def test_brake_into_reverse_uses_reverse_friction(oval, state):
    car = make_car(oval, BRAKE)
    car.update(state)
    assert car.speed == pytest.approx(-0.4 + 0.1)


def test_speed_clamped(oval, state):
    car = make_car(oval, FORWARD)
    car.speed = 100.0
    car.update(state)
    assert car.speed == pytest.approx(AgentProfile().max_speed)

    car = make_car(oval, BRAKE)
    car.speed = -100.0
    car.update(state)
    assert car.speed == pytest.approx(-AgentProfile().max_speed / 2)


def test_steering(oval, state):
    left = make_car(oval, LEFT)
    left.update(state)
    assert left.angle == pytest.approx(oval.spawn_angle - 0.03)
    right = make_car(oval, RIGHT)
    right.update(state)
    assert right.angle == pytest.approx(oval.spawn_angle + 0.03)


def test_attribute_points_map_to_physics():
    p = AgentProfile(accel_points=2, steer_points=2, speed_points=8)
    assert p.max_speed == pytest.approx(10.0)
    assert p.acceleration == pytest.approx(0.1)
    assert p.turn_speed == pytest.approx(0.015)


def test_off_track_kills_and_freezes(oval, state):
    car = make_car(oval, FORWARD)
    car.x, car.y = 10.0, 10.0
    car.update(state)
    assert car.status is AgentStatus.DEAD
    ticks, x = car.ticks, car.x
    car.update(state)
    assert (car.ticks, car.x) == (ticks, x)


def test_stagnation_kills(oval, state):
    car = make_car(oval, IDLE)
    for _ in range(10):
        car.update(state)
    assert car.active
    assert car.stagnant_ticks == 9
    car.update(state)
    assert car.dead


def test_first_tick_captures_start_checkpoint(oval, state):
    car = make_car(oval, IDLE)
    car.update(state)
    assert car.checkpoint_index == 1
    nxt = oval.checkpoints[1]
    dist = math.hypot(car.x - nxt.x, car.y - nxt.y)
    assert car.fitness == pytest.approx(1000 + (1000 - dist) - 0.1)


def test_fitness_while_racing(oval):
    car = make_car(oval)
    count = len(oval.checkpoints)
    cp = oval.checkpoints[3]
    car.lap, car.checkpoint_index, car.ticks = 1, 3, 40
    car.x, car.y = cp.x + 30, cp.y + 40
    expected = (1 * count + 3) * 1000 + (1000 - 50) - 40 * 0.1
    assert car.compute_fitness(oval) == pytest.approx(expected)


def test_fitness_once_finished(oval, state):
    car = make_car(oval, IDLE)
    last = oval.checkpoints[-1]
    car.x, car.y = last.x, last.y
    car.checkpoint_index = len(oval.checkpoints) - 1
    car.ticks = 99
    car.update(state)
    assert car.finished
    count = len(oval.checkpoints)
    assert car.fitness == pytest.approx(count * 1000 + 10000 - 100 - 100 * 0.1)

    calls = car.genome.calls
    car.update(state)
    assert car.genome.calls == calls


def test_update_with_real_genome(oval, state, rng):
    car = Car(NeuralNet(7, 8, 4, rng=rng), oval)
    for _ in range(5):
        car.update(state)
    assert car.ticks >= 1
    assert len(car.readings) == 7


def test_reset_keeps_genome(oval, state):
    car = make_car(oval, FORWARD)
    genome = car.genome
    for _ in range(3):
        car.update(state)
    car.reset(oval)
    assert car.genome is genome
    assert (car.x, car.y, car.speed, car.ticks) == (oval.spawn_x, oval.spawn_y, 0.0, 0)


def test_snapshot(oval, state):
    car = Car(FixedGenome(FORWARD), oval, agent_id=3, color_hue=72.0)
    car.update(state)
    snap = car.snapshot()
    assert snap.agent_id == 3
    assert snap.position == (car.x, car.y)
    assert snap.status == "active"
    assert snap.color_hue == 72.0
    assert len(snap.sensor_readings) == 7
