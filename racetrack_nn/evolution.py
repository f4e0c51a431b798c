"""Generational evolution of the car population."""

import logging
from dataclasses import dataclass, field

import numpy as np

from .car import Car
from .config import SimConfig
from .genome import NeuralNet
from .snapshot import GenerationInfo, GenerationStats, StateSnapshot

log = logging.getLogger(__name__)


@dataclass
class SimulationState:
    """Everything an agent may read during ``update``."""
    track: object
    config: SimConfig
    generation: int = 0
    tick: int = 0


@dataclass
class EliteEntry:
    genome: NeuralNet
    fitness: float
    agent_id: int


@dataclass
class EliteArchive:
    """Top-K genomes of the best generation seen so far.

    A generation that does worse than the archive leaves it untouched, so
    the best known genomes are never lost to a bad roll of mutations.
    """
    entries: list = field(default_factory=list)

    def __len__(self):
        return len(self.entries)

    @property
    def best(self):
        return self.entries[0] if self.entries else None

    @property
    def best_fitness(self):
        return self.entries[0].fitness if self.entries else 0.0

    def consider(self, ranked_cars, k):
        """Replace the archive with the top ``k`` of ``ranked_cars`` if they improve on it."""
        if not ranked_cars:
            return False
        top = ranked_cars[0].fitness
        if self.entries and top <= self.best_fitness:
            return False
        self.entries = [EliteEntry(c.genome.copy(), c.fitness, c.agent_id)
                        for c in ranked_cars[:k]]
        return True

    def genomes(self):
        return [e.genome for e in self.entries]


class Population:
    def __init__(self, config, track, rng=None):
        self.config = config.validate()
        self.track = track
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)
        self.state = SimulationState(track=track, config=self.config)
        self.archive = EliteArchive()
        self.history = []
        # Fewest ticks any car has needed to finish, across generations
        self.best_finish_ticks = None
        self.cars = []
        self._batched = None
        self.seed()

    def __repr__(self):
        return (f"Population(gen={self.generation}, size={len(self.cars)}, "
                f"active={self.active_count}, best={self.archive.best_fitness:.1f})")

    @property
    def generation(self):
        return self.state.generation

    @property
    def active_count(self):
        return sum(1 for c in self.cars if c.active)

    @property
    def done(self):
        return all(not c.active for c in self.cars)

    def _hue(self, i):
        return (i * 360.0 / self.config.population_size) % 360.0

    def _new_car(self, genome, i):
        return Car(genome, self.track, self.config.profile, agent_id=i, color_hue=self._hue(i))

    def seed(self):
        """Fresh random genomes for the whole population."""
        cfg = self.config
        self.cars = [
            self._new_car(NeuralNet(cfg.input_size, cfg.hidden_size, cfg.output_size, rng=self.rng), i)
            for i in range(cfg.population_size)
        ]
        self._batched = None
        self.state.tick = 0

    def reset(self):
        self.archive = EliteArchive()
        self.history = []
        self.best_finish_ticks = None
        self.state.generation = 0
        self.seed()
        log.info("Population reset: %d cars on %s", len(self.cars), self.track.name)

    # ---------------- simulation ----------------

    def _tick_batched(self, active):
        # Lazy import keeps torch off the path when batching is disabled
        from .batched import BatchedBrains

        if self._batched is None:
            self._batched = BatchedBrains([c.genome for c in self.cars])
        inputs = np.zeros((len(self.cars), self.config.input_size))
        mask = np.zeros(len(self.cars), dtype=bool)
        for i, car in enumerate(self.cars):
            if car.active:
                inputs[i] = car.get_inputs(self.state)
                mask[i] = True
        outputs = self._batched.forward(inputs, mask)
        for car, out in zip(active, outputs[mask]):
            car.apply_outputs(out, self.state)

    def tick(self):
        """Advance every active car once; breed a new generation when all are done."""
        active = [c for c in self.cars if c.active]
        if active:
            if self.config.batched:
                self._tick_batched(active)
            else:
                for car in active:
                    car.update(self.state)
            self.state.tick += 1
        # Generation end is only checked once the whole batch has moved
        if self.done:
            self.advance_generation()
        return self.snapshot()

    def step_frame(self):
        """One rendering callback: ``sim_speed`` ticks, cut short at a generation boundary."""
        snap = None
        start_gen = self.generation
        for _ in range(self.config.sim_speed):
            snap = self.tick()
            if self.generation != start_gen:
                break
        return snap

    def run_generation(self, max_ticks=None):
        """Tick until the current generation ends (or ``max_ticks`` forces it)."""
        start_gen = self.generation
        ticks = 0
        while self.generation == start_gen:
            if max_ticks is not None and ticks >= max_ticks:
                self.advance_generation()
                break
            self.tick()
            ticks += 1
        return self.history[-1]

    # ---------------- evolution ----------------

    def advance_generation(self):
        cfg = self.config
        ranked = sorted(self.cars, key=lambda c: c.fitness, reverse=True)
        assert ranked or self.archive.entries, "cannot breed from an empty population and archive"

        replaced = self.archive.consider(ranked, cfg.elite_count)
        if replaced:
            log.debug("Archive replaced: best %.1f from car %d",
                      self.archive.best_fitness, self.archive.best.agent_id)
        else:
            log.debug("Generation %d regressed, keeping archive (best %.1f)",
                      self.generation, self.archive.best_fitness)

        fitnesses = [c.fitness for c in ranked]
        finish_ticks = [c.ticks for c in ranked if c.finished]
        fastest = min(finish_ticks) if finish_ticks else None
        if fastest is not None and (self.best_finish_ticks is None
                                    or fastest < self.best_finish_ticks):
            self.best_finish_ticks = fastest
            log.info("New best finish: %d ticks", fastest)
        stats = GenerationStats(
            generation=self.generation,
            best_fitness=fitnesses[0] if fitnesses else 0.0,
            mean_fitness=float(np.mean(fitnesses)) if fitnesses else 0.0,
            finished_count=len(finish_ticks),
            archive_replaced=replaced,
            best_finish_ticks=fastest,
        )
        self.history.append(stats)

        parents = self.archive.genomes()
        new_cars = [self._new_car(self.archive.best.genome.copy(), 0)]
        while len(new_cars) < cfg.population_size:
            parent_a = parents[self.rng.integers(len(parents))]
            parent_b = parents[self.rng.integers(len(parents))]
            child = NeuralNet.crossover(parent_a, parent_b, rng=self.rng)
            child.mutate(cfg.mutation_rate, rng=self.rng)
            new_cars.append(self._new_car(child, len(new_cars)))

        self.cars = new_cars
        self._batched = None
        self.state.generation += 1
        self.state.tick = 0

        log.info("Gen %d | Best: %.0f | Mean: %.0f | Finished: %d | Best ever: %.0f%s",
                 stats.generation, stats.best_fitness, stats.mean_fitness,
                 stats.finished_count, self.archive.best_fitness,
                 "" if replaced else " (archive kept)")
        return stats

    # ---------------- views ----------------

    def best_car(self):
        return max(self.cars, key=lambda c: c.fitness) if self.cars else None

    def snapshot(self):
        best = self.archive.best
        return StateSnapshot(
            tick=self.state.tick,
            agents=tuple(c.snapshot() for c in self.cars),
            generation=GenerationInfo(
                generation=self.generation,
                best_fitness_overall=self.archive.best_fitness,
                best_fitness_holder_id=best.agent_id if best else None,
                best_finish_ticks=self.best_finish_ticks,
            ),
            active_count=self.active_count,
            track_progress_percent=self.track.progress_percent(self.cars, self.config.laps),
        )

    def save_best(self, path):
        best = self.archive.best
        genome = best.genome if best else self.best_car().genome
        genome.save(path)
        log.info("Saved best genome to %s", path)
