from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt

import main


def test_preview_prints_manual_performance(capsys):
    assert main.main(["--log-level", "WARNING"]) == 0

    out = capsys.readouterr().out
    assert "Manual gains (Kp = 1.00, Ki = 0.02, Kd = 0.10)" in out
    assert "Settling time" in out


def test_optimize_prints_formatted_gains(capsys, tmp_path):
    plot_dir = tmp_path / "figs"
    code = main.main([
        "--optimize", "--population", "4", "--generations", "2", "--seed", "0",
        "--log-level", "WARNING", "--plot-dir", str(plot_dir),
    ])

    assert code == 0
    out = capsys.readouterr().out
    assert "Tuning in progress" in out
    assert "Optimized PID parameters: Kp = " in out
    assert "Tuned gains" in out
    assert (plot_dir / "trajectory_manual.png").exists()
    assert (plot_dir / "trajectory_tuned.png").exists()
    assert (plot_dir / "convergence.png").exists()
    assert (plot_dir / "comparison.png").exists()


def test_figures_are_closed_after_saving(tmp_path):
    plt.close("all")
    code = main.main([
        "--optimize", "--population", "4", "--generations", "2", "--seed", "0",
        "--log-level", "WARNING", "--plot-dir", str(tmp_path),
    ])

    assert code == 0
    assert plt.get_fignums() == []


def test_invalid_configuration_exits_with_error(capsys):
    assert main.main(["--population", "1"]) == 2
    assert "Invalid configuration" in capsys.readouterr().out
