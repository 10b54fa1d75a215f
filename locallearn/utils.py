"""
Utilities for Local Learning Simulations

This module provides summary statistics and plotting helpers for simulation
snapshots. None of it is used by the engine itself; it is the hand-off point to a
presentation layer.
"""

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.gridspec import GridSpec

from .tensor_ops import safe_mean

PHASES = ("free", "nudged", "negative")


def layer_activity(snapshot):
    """
    Mean absolute activity per layer for the free and nudged states

    Args:
        snapshot (Snapshot): Simulation snapshot

    Returns:
        list: One dict per layer with keys 'size', 'free', 'nudged' and 'delta'
    """
    activity = []
    for size, free, nudged in zip(snapshot.layer_sizes, snapshot.free, snapshot.nudged):
        free_mean = safe_mean(free.abs())
        nudged_mean = safe_mean(nudged.abs())
        activity.append({
            'size': size,
            'free': free_mean,
            'nudged': nudged_mean,
            'delta': abs(nudged_mean - free_mean),
        })
    return activity


def compute_state_statistics(snapshot):
    """
    Compute statistics of the activation states

    Args:
        snapshot (Snapshot): Simulation snapshot

    Returns:
        dict: Nested dictionary keyed by phase then 'layer_<i>'
    """
    stats = {}
    for phase in PHASES:
        stats[phase] = {}
        for i, state in enumerate(getattr(snapshot, phase)):
            values = state.cpu().numpy()
            if values.size == 0:
                summary = dict.fromkeys(('mean', 'std', 'min', 'max', 'median'), 0.0)
            else:
                summary = {
                    'mean': float(np.mean(values)),
                    'std': float(np.std(values)),
                    'min': float(np.min(values)),
                    'max': float(np.max(values)),
                    'median': float(np.median(values)),
                }
            stats[phase][f'layer_{i}'] = summary
    return stats


def plot_energy_history(history, title='Energy'):
    """
    Plot the rolling energy history

    Args:
        history (sequence of float): Energy values, oldest first
        title (str, optional): Plot title. Defaults to 'Energy'.

    Returns:
        plt.Figure: Matplotlib figure with plot
    """
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(list(history))
    ax.set_title(title)
    ax.set_xlabel('Step')
    ax.set_ylabel('Energy')
    ax.grid(True)
    plt.tight_layout()
    return fig


def visualize_layer_states(snapshot, phases=PHASES):
    """
    Visualize the activation of every layer for each phase

    Args:
        snapshot (Snapshot): Simulation snapshot
        phases (sequence of str, optional): Phases to show, one row each

    Returns:
        plt.Figure: Matplotlib figure with visualizations
    """
    n_layers = len(snapshot.layer_sizes)
    fig = plt.figure(figsize=(3 * n_layers, 1.5 * len(phases) + 1))
    gs = GridSpec(len(phases), n_layers, figure=fig)

    for row, phase in enumerate(phases):
        for i, state in enumerate(getattr(snapshot, phase)):
            ax = fig.add_subplot(gs[row, i])
            activations = state.cpu().numpy().reshape(1, -1)
            im = ax.imshow(activations, cmap='viridis', aspect='auto', vmin=-1.0, vmax=1.0)
            ax.set_title(f'{phase} L{i}')
            ax.axis('off')
    fig.colorbar(im, ax=fig.axes)
    return fig


def plot_goodness(snapshot):
    """
    Bar chart of positive and negative goodness per transition

    Args:
        snapshot (Snapshot): Snapshot of a forward-forward run

    Returns:
        plt.Figure: Matplotlib figure with plot
    """
    pos, neg = snapshot.goodness
    index = np.arange(len(pos))
    width = 0.4

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.bar(index - width / 2, pos, width, label='positive')
    ax.bar(index + width / 2, neg, width, label='negative')
    ax.set_xticks(index)
    ax.set_xticklabels([f'W{i}' for i in index])
    ax.set_ylabel('Goodness')
    ax.legend()
    plt.tight_layout()
    return fig
