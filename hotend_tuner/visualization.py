"""
Visualization Module
====================

Plots for the hotend tuner:
- Temperature trajectory against the setpoint
- Heater output
- GA convergence
- Before/after tuning comparison

Figures are written to ``output_dir`` when a ``save_name`` is given.
"""

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np

from .integrator import Trajectory


# Set professional style
plt.rcParams.update({
    'font.family': 'serif',
    'font.size': 11,
    'axes.labelsize': 12,
    'axes.titlesize': 14,
    'legend.fontsize': 10,
    'xtick.labelsize': 10,
    'ytick.labelsize': 10,
    'figure.dpi': 150,
    'savefig.dpi': 300,
    'savefig.bbox': 'tight',
    'axes.grid': True,
    'grid.alpha': 0.3,
})


class TuningVisualizer:
    """Visualization tools for simulation and tuning results."""

    def __init__(self, output_dir: str = "figures"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        # Color scheme
        self.colors = {
            'temperature': '#e74c3c',  # Red
            'output': '#f39c12',       # Orange
            'setpoint': '#c0392b',     # Dark red
            'limit': '#95a5a6',        # Gray
            'best': '#2ecc71',         # Green
            'mean': '#3498db',         # Blue
            'manual': '#9b59b6',       # Purple
            'tuned': '#2ecc71',        # Green
        }

    def _save(self, fig: plt.Figure, save_name: Optional[str]):
        if save_name:
            fig.savefig(self.output_dir / save_name, dpi=300, bbox_inches='tight')

    def plot_trajectory(
        self,
        trajectory: Trajectory,
        setpoint: float,
        title: str = "PID Simulation",
        show_output: bool = True,
        save_name: Optional[str] = "trajectory.png"
    ) -> plt.Figure:
        """
        Temperature over time with the setpoint as a dashed line.

        Args:
            trajectory: Simulation result
            setpoint: Target temperature
            title: Plot title
            show_output: Add a second panel with the heater output
            save_name: Output filename (None to skip saving)
        """
        if show_output:
            fig, (ax, ax_out) = plt.subplots(
                2, 1, figsize=(12, 8), sharex=True,
                gridspec_kw={'height_ratios': [3, 1]}
            )
        else:
            fig, ax = plt.subplots(figsize=(12, 6))

        ax.plot(trajectory.time, trajectory.temperature,
                color=self.colors['temperature'], linewidth=2,
                label='Actual temperature')
        ax.axhline(y=setpoint, color=self.colors['setpoint'], linestyle='--',
                   linewidth=1.5, label='Setpoint')
        ax.axhline(y=trajectory.parameters.max_temperature, color=self.colors['limit'],
                   linestyle=':', linewidth=1, label='Heater cut-off')
        ax.set_ylabel('Temperature (°C)')
        ax.set_title(title + (" (unstable)" if trajectory.unstable else ""))
        ax.legend(loc='lower right')
        ax.set_xlim(left=0)

        if show_output:
            ax_out.plot(trajectory.time, trajectory.output,
                        color=self.colors['output'], linewidth=1.5)
            ax_out.set_ylabel('Heater output')
            ax_out.set_xlabel('Time (s)')
        else:
            ax.set_xlabel('Time (s)')

        plt.tight_layout()
        self._save(fig, save_name)

        return fig

    def plot_convergence(
        self,
        history: dict,
        save_name: Optional[str] = "convergence.png"
    ) -> plt.Figure:
        """Plot optimization convergence metrics."""
        fig, axes = plt.subplots(1, 2, figsize=(12, 5))

        generations = np.asarray(history['generations'])
        best_cost = -np.asarray(history['best_fitness'], dtype=float)
        mean_cost = -np.asarray(history['mean_fitness'], dtype=float)

        # Cost (log scale, costs span orders of magnitude)
        ax = axes[0]
        ax.semilogy(generations, best_cost, color=self.colors['best'],
                    linewidth=2, label='Best so far')
        ax.semilogy(generations, mean_cost, color=self.colors['mean'],
                    linewidth=1.5, alpha=0.8, label='Population mean')
        ax.set_xlabel('Generation')
        ax.set_ylabel('Cost')
        ax.set_title('Cost Convergence')
        ax.legend(loc='upper right')

        # Best gains per generation
        ax = axes[1]
        genes = np.asarray(history['best_genes'], dtype=float).reshape(-1, 3)
        for j, (name, color) in enumerate(zip(('Kp', 'Ki', 'Kd'),
                                              ('#e74c3c', '#3498db', '#2ecc71'))):
            ax.plot(generations, genes[:, j], color=color, linewidth=2, label=name)
        ax.set_xlabel('Generation')
        ax.set_ylabel('Gain')
        ax.set_title('Best Gains Evolution')
        ax.legend(loc='upper right')

        plt.tight_layout()
        self._save(fig, save_name)

        return fig

    def plot_comparison(
        self,
        trajectories: Dict[str, Trajectory],
        setpoint: float,
        save_name: Optional[str] = "comparison.png"
    ) -> plt.Figure:
        """
        Compare temperature responses of different gain sets.

        Args:
            trajectories: Label -> trajectory, e.g. {'manual': ..., 'tuned': ...}
            setpoint: Target temperature
        """
        fig, axes = plt.subplots(1, 2, figsize=(14, 5))

        # Temperature response
        ax = axes[0]
        for name, trajectory in trajectories.items():
            ax.plot(trajectory.time, trajectory.temperature,
                    color=self.colors.get(name, 'gray'),
                    label=f"{name} ({trajectory.parameters.gains.format()})",
                    linewidth=2)
        ax.axhline(y=setpoint, color='black', linestyle='--',
                   linewidth=1.5, label='Setpoint')
        ax.set_xlabel('Time (s)')
        ax.set_ylabel('Temperature (°C)')
        ax.set_title('Temperature Response')
        ax.legend(loc='lower right')
        ax.set_xlim(left=0)

        # Tracking error
        ax = axes[1]
        for name, trajectory in trajectories.items():
            ax.plot(trajectory.time, setpoint - trajectory.temperature,
                    color=self.colors.get(name, 'gray'),
                    label=name, linewidth=2)
        ax.axhline(y=0, color='black', linestyle='--', linewidth=1)
        ax.set_xlabel('Time (s)')
        ax.set_ylabel('Error (°C)')
        ax.set_title('Error Response')
        ax.legend(loc='upper right')
        ax.set_xlim(left=0)

        plt.tight_layout()
        self._save(fig, save_name)

        return fig
