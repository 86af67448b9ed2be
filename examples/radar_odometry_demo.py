#!/usr/bin/env python3
"""Demo script for keyframe pose-graph radar odometry.

Runs a radar image sequence through phase correlation registration and the
adaptive keyframe back end, then writes the raw and optimized trajectories
in TUM format.

Usage:
    uv run python examples/radar_odometry_demo.py
    uv run python examples/radar_odometry_demo.py --dataset data/radar/sequence_01
    uv run python examples/radar_odometry_demo.py --config params.yaml --verbose
"""

import argparse
import logging
import sys
from pathlib import Path

from radar_odometry import (
    GraphOptimizer,
    GraphOptimizerConfig,
    PhaseCorrelationEstimator,
    RadarDatasetReader,
    SolverDivergenceError,
    TrajectoryRecorder,
)


def main() -> None:
    """Run the radar odometry demo."""
    parser = argparse.ArgumentParser(
        description="Keyframe pose-graph radar odometry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dataset",
        type=Path,
        default=Path("data/radar/sequence_01"),
        help="Sequence directory containing radar/ (default: data/radar/sequence_01)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML parameter file (default: built-in parameters)",
    )
    parser.add_argument(
        "--meters-per-pixel",
        type=float,
        default=0.0432,
        help="Cartesian image resolution (default: 0.0432)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory for the TUM trajectories (default: output)",
    )
    parser.add_argument(
        "--max-frames",
        type=int,
        default=None,
        help="Max frames to process (default: all)",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.config is not None:
        config = GraphOptimizerConfig.from_yaml(args.config)
    else:
        config = GraphOptimizerConfig(resolution=args.meters_per_pixel)

    print("Initializing radar odometry pipeline...")
    reader = RadarDatasetReader(str(args.dataset))
    estimator = PhaseCorrelationEstimator(meters_per_pixel=args.meters_per_pixel)
    recorder = TrajectoryRecorder()
    optimizer = GraphOptimizer(estimator, config, publisher=recorder)

    print(f"Processing {len(reader)} frames...")
    print()
    print(
        f"{'Frame':>6} {'Status':^18} {'Node':>5} {'Key':>5} {'Base':>4} "
        f"{'Score':>6} | {'Keyframe':<24} | {'Position'}"
    )
    print("-" * 100)

    dropped = 0
    for i, frame in enumerate(reader.frames()):
        if args.max_frames is not None and i >= args.max_frames:
            break

        try:
            result = optimizer.process_frame(frame)
        except SolverDivergenceError as e:
            print(f"Solver diverged at frame {i}: {e}")
            sys.exit(1)

        odometry = result.odometry
        if odometry is None:
            continue
        if not odometry.is_accepted:
            dropped += 1

        keyframe = ""
        if result.is_keyframe:
            kf = result.keyframe
            keyframe = f"{kf.previous_key_node}->{kf.key_node} " + (
                "solved" if kf.solved else "deferred"
            )

        # Print every 20 frames or on keyframes
        if i % 20 == 0 or result.is_keyframe:
            pose = optimizer.current_pose
            print(
                f"{i:6d} {odometry.status.value:^18} {result.pose_count:5d} "
                f"{result.key_node:5d} {odometry.baseline:4d} {odometry.score:6.3f} | "
                f"{keyframe:<24} | "
                f"[{pose.x:8.2f}, {pose.y:8.2f}, {pose.heading_deg:7.1f} deg]"
            )

    estimates = optimizer.finalize()

    args.output_dir.mkdir(parents=True, exist_ok=True)
    n_raw = recorder.save_tum(args.output_dir / "odom.txt")
    n_opt = recorder.save_tum(args.output_dir / "opt_odom.txt", optimized=True)

    state = optimizer.state
    print()
    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Frames processed:  {optimizer.num_frames}")
    print(f"Pose nodes:        {state.pose_count + 1}")
    print(f"Frames dropped:    {dropped}")
    print(f"Keyframes:         {len(state.keyframe_nodes)}")
    print(f"Solved nodes:      {len(estimates)}")
    print(f"Raw poses:         {n_raw} -> {args.output_dir / 'odom.txt'}")
    print(f"Optimized poses:   {n_opt} -> {args.output_dir / 'opt_odom.txt'}")

    if estimates:
        final = estimates[max(estimates)]
        print(f"Final position:    [{final.x:.2f}, {final.y:.2f}]")


if __name__ == "__main__":
    main()
