import numpy as np
import pytest

from racetrack_nn.car import AgentStatus
from racetrack_nn.config import SimConfig
from racetrack_nn.evolution import EliteArchive, Population

MAX_TICKS = 50000


def cells(genome):
    return np.concatenate([m.data.ravel() for m in genome.matrices()])


def run_until_generation_ends(pop):
    gen = pop.generation
    for _ in range(MAX_TICKS):
        pop.tick()
        if pop.generation != gen:
            return
    pytest.fail("generation never terminated")


@pytest.fixture
def small_config():
    return SimConfig(population_size=10, laps=1, seed=7)


def test_seed_population(small_config, oval):
    pop = Population(small_config, oval)
    assert len(pop.cars) == 10
    assert pop.generation == 0
    assert [c.agent_id for c in pop.cars] == list(range(10))
    assert [c.color_hue for c in pop.cars] == [i * 36.0 for i in range(10)]
    assert all(c.genome.topology == (7, 8, 4) for c in pop.cars)


class Ranked:
    def __init__(self, fitness, genome, agent_id=0):
        self.fitness = fitness
        self.genome = genome
        self.agent_id = agent_id


def test_archive_keeps_best_generation(small_config, oval):
    pop = Population(small_config, oval)
    genomes = [c.genome for c in pop.cars]
    archive = EliteArchive()
    assert archive.best_fitness == 0.0

    first = [Ranked(100 - i, g, i) for i, g in enumerate(genomes)]
    assert archive.consider(first, k=5)
    assert len(archive) == 5
    assert archive.best_fitness == 100
    kept = archive.entries

    worse = [Ranked(50, g) for g in genomes]
    assert not archive.consider(worse, k=5)
    assert archive.entries is kept

    better = [Ranked(200, g, 9) for g in genomes]
    assert archive.consider(better, k=5)
    assert archive.best_fitness == 200
    assert archive.best.agent_id == 9


def test_archive_stores_independent_copies(small_config, oval):
    pop = Population(small_config, oval)
    car = pop.cars[0]
    archive = EliteArchive()
    archive.consider([Ranked(10, car.genome)], k=5)
    before = cells(archive.best.genome).copy()
    car.genome.mutate(1.0)
    assert np.array_equal(cells(archive.best.genome), before)


def test_end_to_end_generations(rect_track):
    config = SimConfig(population_size=10, laps=1, seed=3)
    pop = Population(config, rect_track)
    assert len(rect_track.checkpoints) == 4

    best_so_far = []
    for gen in range(3):
        run_until_generation_ends(pop)
        assert pop.generation == gen + 1
        assert len(pop.cars) == 10
        assert all(c.active for c in pop.cars)
        assert all(c.ticks == 0 and c.fitness == 0.0 for c in pop.cars)
        best_so_far.append(pop.archive.best_fitness)

    assert best_so_far == sorted(best_so_far)
    assert len(pop.history) == 3
    assert [s.generation for s in pop.history] == [0, 1, 2]


def test_elitism_slot_zero_is_unmutated_archive_best(small_config, oval):
    pop = Population(small_config, oval)
    for i, car in enumerate(pop.cars):
        car.fitness = float(i * 10)
    pop.advance_generation()
    best = pop.archive.best
    assert best.fitness == 90.0
    assert best.agent_id == 9
    assert np.array_equal(cells(pop.cars[0].genome), cells(best.genome))
    assert pop.cars[0].genome is not best.genome


def test_regressing_generation_keeps_archive(small_config, oval):
    pop = Population(small_config, oval)
    for i, car in enumerate(pop.cars):
        car.fitness = float(i * 10)
    pop.advance_generation()
    archived = pop.archive.entries
    archived_best = cells(pop.archive.best.genome).copy()

    for car in pop.cars:
        car.fitness = 5.0
    stats = pop.advance_generation()
    assert not stats.archive_replaced
    assert pop.archive.entries is archived
    assert pop.archive.best_fitness == 90.0
    assert np.array_equal(cells(pop.cars[0].genome), archived_best)
    assert pop.generation == 2


def test_generation_stats(small_config, oval):
    pop = Population(small_config, oval)
    for i, car in enumerate(pop.cars):
        car.fitness = float(i)
    stats = pop.advance_generation()
    assert stats.generation == 0
    assert stats.best_fitness == 9.0
    assert stats.mean_fitness == pytest.approx(4.5)
    assert stats.archive_replaced
    assert pop.history == [stats]


def finish_cars(pop, ticks):
    for car, t in zip(pop.cars, ticks):
        car.status = AgentStatus.FINISHED
        car.ticks = t
        car.fitness = 20000.0 - t


def test_best_finish_time_only_improves(small_config, oval):
    pop = Population(small_config, oval)
    assert pop.best_finish_ticks is None
    assert pop.snapshot().generation.best_finish_ticks is None

    finish_cars(pop, [900, 700, 800])
    stats = pop.advance_generation()
    assert stats.best_finish_ticks == 700
    assert stats.finished_count == 3
    assert pop.best_finish_ticks == 700

    finish_cars(pop, [750])
    stats = pop.advance_generation()
    assert stats.best_finish_ticks == 750
    assert pop.best_finish_ticks == 700

    # a generation without finishers keeps the record
    stats = pop.advance_generation()
    assert stats.best_finish_ticks is None
    assert stats.finished_count == 0
    assert pop.best_finish_ticks == 700

    finish_cars(pop, [650, 690])
    pop.advance_generation()
    assert pop.best_finish_ticks == 650
    assert pop.snapshot().generation.best_finish_ticks == 650

    pop.reset()
    assert pop.best_finish_ticks is None


def test_empty_population_and_archive_is_invariant_violation(small_config, oval):
    pop = Population(small_config, oval)
    pop.cars = []
    with pytest.raises(AssertionError):
        pop.advance_generation()


def test_tick_and_snapshot(small_config, oval):
    pop = Population(small_config, oval)
    snap = pop.snapshot()
    assert snap.tick == 0
    assert snap.active_count == 10
    assert snap.track_progress_percent == 0.0
    assert snap.generation.generation == 0
    assert snap.generation.best_fitness_holder_id is None

    snap = pop.tick()
    assert snap.tick == 1
    assert len(snap.agents) == 10
    assert all(a.status in ("active", "dead", "finished") for a in snap.agents)
    # every car starts on checkpoint 0 and captures it on the first tick
    assert snap.track_progress_percent > 0


def test_step_frame_runs_sim_speed_ticks(oval):
    pop = Population(SimConfig(population_size=4, sim_speed=3, seed=1), oval)
    snap = pop.step_frame()
    assert snap.tick == 3


def test_run_generation_with_max_ticks(small_config, oval):
    pop = Population(small_config, oval)
    stats = pop.run_generation(max_ticks=5)
    assert stats.generation == 0
    assert pop.generation == 1


def test_same_seed_is_reproducible(rect_track):
    config = SimConfig(population_size=6, laps=1, seed=11)
    a = Population(config, rect_track)
    b = Population(SimConfig(population_size=6, laps=1, seed=11), rect_track)
    for _ in range(30):
        a.tick()
        b.tick()
    assert [(c.x, c.y, c.fitness) for c in a.cars] == [(c.x, c.y, c.fitness) for c in b.cars]


def test_batched_tick_matches_sequential(rect_track):
    pytest.importorskip("torch")
    seq = Population(SimConfig(population_size=6, laps=1, seed=5), rect_track)
    bat = Population(SimConfig(population_size=6, laps=1, seed=5, batched=True), rect_track)
    for _ in range(40):
        seq.tick()
        bat.tick()
    for s, b in zip(seq.cars, bat.cars):
        assert b.status == s.status
        assert b.x == pytest.approx(s.x)
        assert b.y == pytest.approx(s.y)
        assert b.fitness == pytest.approx(s.fitness)


def test_reset(small_config, oval):
    pop = Population(small_config, oval)
    pop.run_generation(max_ticks=2)
    pop.reset()
    assert pop.generation == 0
    assert len(pop.archive) == 0
    assert pop.history == []
    assert len(pop.cars) == 10


def test_save_best(tmp_path, small_config, oval):
    from racetrack_nn.genome import NeuralNet

    pop = Population(small_config, oval)
    for i, car in enumerate(pop.cars):
        car.fitness = float(i)
    pop.advance_generation()
    path = tmp_path / "best.npz"
    pop.save_best(str(path))
    loaded = NeuralNet.load(str(path))
    assert np.array_equal(cells(loaded), cells(pop.archive.best.genome))
