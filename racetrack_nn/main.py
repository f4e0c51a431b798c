"""Command line entry point."""

import argparse
import logging
import sys

from .config import AGENT_PRESETS, SimConfig, get_profile
from .errors import RacetrackError
from .evolution import Population
from .track import Track, default_track

log = logging.getLogger(__name__)


def build_parser():
    d = SimConfig()
    parser = argparse.ArgumentParser(
        prog="racetrack-nn",
        description="Evolve neural-network drivers around a 2D track.")
    parser.add_argument("--track", help="track file (.json editor format or .csv centreline); "
                                        "defaults to the built-in oval")
    parser.add_argument("--population", type=int, default=d.population_size)
    parser.add_argument("--laps", type=int, default=d.laps)
    parser.add_argument("--hidden", type=int, default=d.hidden_size)
    parser.add_argument("--mutation-rate", type=float, default=d.mutation_rate)
    parser.add_argument("--speed", type=int, default=d.sim_speed, help="ticks per frame")
    parser.add_argument("--stagnation-limit", type=int, default=d.stagnation_limit)
    parser.add_argument("--profile", choices=sorted(AGENT_PRESETS), default="car")
    parser.add_argument("--seed", type=int)
    parser.add_argument("--batched", action="store_true", help="batched torch inference")
    parser.add_argument("--headless", action="store_true", help="run without the viewer")
    parser.add_argument("--generations", type=int, default=20, help="headless generations")
    parser.add_argument("--max-ticks", type=int, help="force a generation end after this many ticks")
    parser.add_argument("--save-best", help="write the best genome to this .npz path")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def load_track(path, resolution):
    if path is None:
        return default_track()
    if path.lower().endswith(".csv"):
        return Track.from_centerline_csv(path)
    return Track.from_json(path, resolution=resolution)


def config_from_args(args):
    return SimConfig(
        population_size=args.population,
        sim_speed=args.speed,
        laps=args.laps,
        hidden_size=args.hidden,
        mutation_rate=args.mutation_rate,
        stagnation_limit=args.stagnation_limit,
        batched=args.batched,
        seed=args.seed,
        profile=get_profile(args.profile),
    ).validate()


def run_headless(population, generations, max_ticks=None):
    for _ in range(generations):
        population.run_generation(max_ticks=max_ticks)
    return population.history


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        config = config_from_args(args)
        track = load_track(args.track, config.curve_resolution)
    except (RacetrackError, OSError) as e:
        log.error("Cannot start simulation: %s", e)
        return 2

    population = Population(config, track)
    log.info("Track %s | %d cars | %d laps | profile %s",
             track.name, config.population_size, config.laps, config.profile.name)
    if args.headless:
        run_headless(population, args.generations, args.max_ticks)
    else:
        from .viewer import run_viewer
        run_viewer(population)

    if args.save_best:
        population.save_best(args.save_best)
    return 0


if __name__ == "__main__":
    sys.exit(main())
