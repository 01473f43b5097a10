"""
Hotend PID Simulation and Auto-Tuning
=====================================

Command-line front end. The core never keeps state between calls: every
change of parameters is a fresh run_simulation call, and tuning is an
explicit optimize_pid call.

This script:
1. Simulates the hotend with the given (or default) gains
2. Optionally runs the genetic optimizer to tune the gains
3. Prints the performance of the manual and tuned gains
4. Optionally writes figures

Usage:
    python main.py                              # preview default gains
    python main.py --setpoint 220 --optimize --seed 42 --plot-dir figures
"""

import argparse
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from hotend_tuner.cost import evaluate_cost, performance_summary
from hotend_tuner.exceptions import InvalidConfiguration
from hotend_tuner.genetic import GenerationReport
from hotend_tuner.integrator import run_simulation
from hotend_tuner.parameters import ParameterSet
from hotend_tuner.tuning import TuningConfig, format_gains, optimize_pid


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hotend-tuner",
        description="PID simulation and optimization for a 3D printer hotend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --Kp 1.2 --Ki 0.01 --Kd 0.2
      Preview a gain set

  python main.py --setpoint 220 --optimize --seed 42
      Tune the gains for 220 °C with a reproducible search
""",
    )

    # Gains (slider ranges of the interactive app)
    p.add_argument("--Kp", type=float, default=1.0, help="Proportional gain [0, 2]")
    p.add_argument("--Ki", type=float, default=0.02, help="Integral gain [0, 0.05]")
    p.add_argument("--Kd", type=float, default=0.1, help="Derivative gain [0, 0.5]")

    # Environment
    p.add_argument("--setpoint", type=float, default=200.0, help="Target temperature (°C)")
    p.add_argument("--ambient", type=float, default=25.0, help="Ambient temperature (°C)")
    p.add_argument("--decay-rate", type=float, default=0.1, help="Cooling rate (1/s)")

    # Tuning
    p.add_argument("--optimize", action="store_true", help="Run the genetic optimizer")
    p.add_argument("--population", type=int, default=50, help="GA population size")
    p.add_argument("--generations", type=int, default=200, help="GA generations")
    p.add_argument("--seed", type=int, default=None, help="Random seed for the search")
    p.add_argument("--workers", type=int, default=1, help="Parallel fitness evaluations")
    p.add_argument("--timeout", type=float, default=None,
                   help="Stop tuning after this many seconds and keep the best so far")

    # Output
    p.add_argument("--plot-dir", default=None, help="Write figures to this directory")
    p.add_argument("--log-level", default="INFO",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p


def _print_performance(label: str, params: ParameterSet):
    trajectory = run_simulation(params)
    breakdown = evaluate_cost(trajectory, params.setpoint, expected_samples=len(trajectory))
    perf = performance_summary(trajectory, params.setpoint)

    print(f"\n{label} ({format_gains(params.gains)}):")
    if trajectory.unstable:
        print(f"  Numerically unstable: {trajectory.message}")
        return trajectory
    print(f"  Cost: {breakdown.total:.6g}")
    print(f"  Settling time: {perf['settling_time']:.1f} s")
    print(f"  Overshoot: {perf['overshoot']:.2f}%")
    print(f"  Rise time: {perf['rise_time']:.1f} s")
    print(f"  Peak temperature: {perf['peak_temperature']:.1f} °C")
    print(f"  Steady-state error: {perf['steady_state_error']:.2f} °C")
    return trajectory


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Simulation, optional tuning, and report."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        manual = ParameterSet(
            Kp=args.Kp, Ki=args.Ki, Kd=args.Kd,
            decay_rate=args.decay_rate,
            ambient_temp=args.ambient,
            setpoint=args.setpoint,
        )
        config = TuningConfig(
            population_size=args.population,
            n_generations=args.generations,
            seed=args.seed,
            n_workers=args.workers,
            timeout=args.timeout,
        )
    except InvalidConfiguration as exc:
        print(f"Invalid configuration: {exc}")
        return 2

    print("=" * 70)
    print("  PID Simulation and Optimization for 3D Printer")
    print("=" * 70)
    print(f"Setpoint: {args.setpoint} °C | Ambient: {args.ambient} °C | "
          f"Decay rate: {args.decay_rate} 1/s")

    trajectories = {'manual': _print_performance("Manual gains", manual)}
    result = None

    if args.optimize:
        print("\n" + "-" * 70)
        print("Tuning in progress... Please wait.")

        def report(progress: GenerationReport):
            if progress.generation % 10 == 0 or progress.generation == progress.n_generations:
                print(f"  Gen {progress.generation:3d}/{progress.n_generations} | "
                      f"best cost: {-progress.best_fitness:.6g}")

        # Search runs in a worker so Ctrl+C can cancel it and keep the best so far
        cancel = threading.Event()
        start_time = time.time()
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(
                optimize_pid, args.setpoint, args.decay_rate, args.ambient, config,
                on_generation=report, cancel_event=cancel,
            )
            try:
                result = future.result()
            except KeyboardInterrupt:
                print("\nCancelling after the current generation...")
                cancel.set()
                result = future.result()
        elapsed = time.time() - start_time

        status = "cancelled" if result.cancelled else "completed"
        print(f"\nTuning {status} after {result.generations_run} generations "
              f"({elapsed:.1f} s).")
        print(f"Optimized PID parameters: {format_gains(result.best_gains)}")

        trajectories['tuned'] = _print_performance(
            "Tuned gains", manual.with_gains(result.best_gains)
        )

    if args.plot_dir:
        from hotend_tuner.visualization import TuningVisualizer

        import matplotlib.pyplot as plt

        viz = TuningVisualizer(output_dir=args.plot_dir)
        figures = [viz.plot_trajectory(trajectories['manual'], args.setpoint,
                                       save_name="trajectory_manual.png")]
        if result is not None:
            figures.append(viz.plot_trajectory(trajectories['tuned'], args.setpoint,
                                               title="PID Simulation (tuned)",
                                               save_name="trajectory_tuned.png"))
            figures.append(viz.plot_convergence(result.history))
            figures.append(viz.plot_comparison(trajectories, args.setpoint))
        for fig in figures:
            plt.close(fig)
        print(f"\nFigures saved to: {args.plot_dir}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
