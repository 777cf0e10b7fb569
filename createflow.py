#!/usr/bin/env python3
"""
FlowTrails entry point.

Builds a flow field and a particle population and either opens the live
preview (default) or runs a fixed number of ticks headless and prints a
summary.

Usage:
    python createflow.py --algorithm curl --particles 2000
    python createflow.py --headless --frames 600 --seed 7
    python createflow.py --params my_params.json
    python createflow.py --audio-wav track.wav
"""

import sys
import json
import argparse
import logging
import numpy as np

from flowtrails import config
from flowtrails.core.audio_level import AudioPlayback, AudioReactor
from flowtrails.physics.grid_computation import FlowFieldGrid
from flowtrails.physics.particle_system import ParticleSimulation
from flowtrails.ui.brush_controls import BrushController
from flowtrails.visualization import trail_preview


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='FlowTrails - Noise-driven flow field with particle trails',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python createflow.py --algorithm curl
  python createflow.py --headless --frames 600 --seed 7
  python createflow.py --write-params params.json
  python createflow.py --audio-wav track.wav
        """
    )

    parser.add_argument('--params', '-p', type=str, default=None,
                        help='JSON file with "field" and "simulation" parameter overrides')
    parser.add_argument('--write-params', type=str, default=None,
                        help='Write the effective parameters to this JSON file and exit')
    parser.add_argument('--resolution', '-r', type=int, default=None,
                        help=f'Grid cells per dimension (default: {config.DEFAULT_GRID_RES})')
    parser.add_argument('--algorithm', '-a', choices=config.ALGORITHMS, default=None,
                        help=f'Field generation algorithm (default: {config.DEFAULT_ALGORITHM})')
    parser.add_argument('--noise-scale', type=float, default=None,
                        help=f'Noise scale (default: {config.DEFAULT_NOISE_SCALE})')
    parser.add_argument('--particles', '-n', type=int, default=config.DEFAULT_NUM_PARTICLES,
                        help=f'Number of particles (default: {config.DEFAULT_NUM_PARTICLES})')
    parser.add_argument('--seed', '-s', type=int, default=None,
                        help='Random seed for a reproducible run')
    parser.add_argument('--dt', type=float, default=1.0 / 60.0,
                        help='Seconds per tick (default: 1/60)')
    parser.add_argument('--frames', '-f', type=int, default=None,
                        help='Number of ticks to run (required with --headless)')
    parser.add_argument('--tail-length', type=int, default=config.TAIL_LENGTH,
                        help=f'Trail segments drawn per particle (default: {config.TAIL_LENGTH})')
    parser.add_argument('--audio-wav', type=str, default=None,
                        help='WAV file played into the audio level (loops)')
    parser.add_argument('--audio-sensitivity', type=float, default=config.AUDIO_SENSITIVITY,
                        help=f'Gain on the audio RMS (default: {config.AUDIO_SENSITIVITY})')
    parser.add_argument('--headless', action='store_true',
                        help='Run without a window and print a summary')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')

    return parser.parse_args(argv)


def build_parameters(args):
    """Combine defaults, the optional parameter file and CLI overrides."""
    if args.params:
        field_params, sim_params = config.load_params(args.params)
    else:
        field_params, sim_params = config.FieldParams(), config.SimulationParams()

    if args.resolution is not None:
        field_params.resolution = args.resolution
    if args.algorithm is not None:
        field_params.algorithm = args.algorithm
    if args.noise_scale is not None:
        field_params.noise_scale = args.noise_scale
    return field_params, sim_params


def run_headless(simulation, frames, dt, audio_feed=None):
    """Tick the simulation `frames` times and return its stats."""
    if audio_feed is not None:
        simulation.audio_source = audio_feed
    for _ in range(frames):
        if audio_feed is not None:
            audio_feed.advance(dt)
        simulation.tick(dt)
    return dict(simulation.stats)


def main(argv=None):
    """Main function orchestrating the FlowTrails run."""
    args = parse_arguments(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        field_params, sim_params = build_parameters(args)
    except (OSError, ValueError) as e:
        print(f"Error: could not load parameters: {e}")
        return 2

    if args.write_params:
        with open(args.write_params, 'w') as f:
            json.dump(config.params_to_dict(field_params, sim_params), f, indent=2)
        print(f"Parameters written to {args.write_params}")
        return 0

    rng = np.random.default_rng(args.seed)
    try:
        field = FlowFieldGrid.from_params(field_params, rng=rng)
        simulation = ParticleSimulation(field, args.particles, sim_params, rng=rng)
    except (TypeError, ValueError) as e:
        print(f"Error: {e}")
        return 2

    audio_feed = None
    if args.audio_wav:
        try:
            audio_feed = AudioPlayback.from_wav(
                args.audio_wav, reactor=AudioReactor(sensitivity=args.audio_sensitivity))
        except (OSError, ValueError) as e:
            print(f"Error: could not read audio: {e}")
            return 2

    if args.headless:
        if args.frames is None or args.frames < 1:
            print("Error: --headless requires --frames N with N >= 1")
            return 2
        stats = run_headless(simulation, args.frames, args.dt, audio_feed)
        print(f"Ran {stats['ticks']} ticks over {simulation.time:.2f}s "
              f"with {simulation.num_particles} particles")
        print(f"  respawns: {stats['respawns']}  wraps: {stats['wraps']}  "
              f"fades completed: {stats['fades_completed']}")
        print(f"  fading now: {int(np.count_nonzero(~simulation.active_mask))}")
        if audio_feed is not None:
            print(f"  audio level: {audio_feed.level:.2f}")
        return 0

    brush = BrushController(field)
    trail_preview.run_preview(simulation, brush=brush, dt=args.dt,
                              frames=args.frames, tail_length=args.tail_length,
                              audio_feed=audio_feed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
