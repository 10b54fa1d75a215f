"""
Relaxation Engine

This module implements the two state-relaxation protocols. Both take an input
vector, the previous activation state and the forward weights, and return a new
activation state; weights are only read and no tensor is modified in place.

Protocol A (relax_pc) is the iterative predictive coding relaxation: every hidden
layer moves to reduce its own prediction error while accounting for the error it
induces in the layer below.

Protocol B (relax_layered) is a single forward walk through the layers. Without a
target it yields the free phase; with a target and a nudging strength it yields the
nudged phase that equilibrium propagation contrasts with the free one.
"""

import torch

from .tensor_ops import as_vector, predict_down, project, subtract

DEEPEST_LAYER_MODES = ("fixed", "relax", "clamp")


def clamp_input(inputs, states):
    """Return a copy of the state with layer 0 replaced by the input."""
    return (as_vector(inputs),) + tuple(r.clone() for r in states[1:])


def prediction_errors(states, weights):
    """
    Local prediction errors for every transition

    Args:
        states (sequence of torch.Tensor): Activation state, one vector per layer
        weights (sequence of torch.Tensor): Forward weights

    Returns:
        tuple: errors[l] = states[l] - predict_down(states[l + 1], weights[l])
    """
    return tuple(
        subtract(states[l], predict_down(states[l + 1], w))
        for l, w in enumerate(weights)
    )


def relax_pc(inputs, states, weights, eta, steps, deepest_layer="fixed", target=None):
    """
    Iterative predictive coding relaxation

    Args:
        inputs (sequence or torch.Tensor): Sensory input, clamped to layer 0
        states (sequence of torch.Tensor): Previous activation state
        weights (sequence of torch.Tensor): Forward weights
        eta (float): Inference rate
        steps (int): Number of inference iterations, at least 1
        deepest_layer (str, optional): Treatment of the deepest layer. "fixed" leaves it
            untouched, "relax" applies the bottom-up error term, "clamp" sets it to the
            target when one is given. Defaults to "fixed".
        target (sequence or torch.Tensor, optional): Target used by the "clamp" mode

    Returns:
        tuple: The relaxed activation state
    """
    if steps < 1:
        raise ValueError(f"relaxation needs at least one inference step, got {steps}")
    if deepest_layer not in DEEPEST_LAYER_MODES:
        raise ValueError(f"unknown deepest layer mode {deepest_layer!r}, expected one of {DEEPEST_LAYER_MODES}")

    top = len(states) - 1
    top_target = as_vector(target) if target is not None else None
    current = clamp_input(inputs, states)

    for _ in range(int(steps)):
        errors = prediction_errors(current, weights)
        updated = list(current)

        # Hidden layers: top-down error from below minus own error
        for l in range(1, top):
            drive = weights[l - 1] @ errors[l - 1]
            updated[l] = current[l] + eta * (drive - errors[l])

        if deepest_layer == "relax":
            updated[top] = current[top] + eta * (weights[top - 1] @ errors[top - 1])
        elif deepest_layer == "clamp" and top_target is not None:
            updated[top] = top_target.clone()

        current = tuple(updated)

    return current


def relax_layered(inputs, states, weights, eta, target=None, beta=None):
    """
    Single-pass layered relaxation with an optional nudge

    Args:
        inputs (sequence or torch.Tensor): Sensory input, clamped to layer 0
        states (sequence of torch.Tensor): State to start from (the previous free state
            for the free phase, the free result for the nudged phase)
        weights (sequence of torch.Tensor): Forward weights
        eta (float): Inference rate
        target (sequence or torch.Tensor, optional): Supervisory target for the output layer
        beta (float, optional): Nudging strength

    Returns:
        tuple: The relaxed activation state
    """
    current = list(clamp_input(inputs, states))
    last = len(weights) - 1

    for l in range(last):
        pred = project(current[l], weights[l])
        error = current[l + 1] - pred
        current[l + 1] = current[l + 1] - eta * error

    # Output layer only moves under a nudge
    if target is not None and beta is not None:
        goal = as_vector(target)
        current[-1] = current[-1] + beta * subtract(goal, current[-1])

    return tuple(current)


def corrupt_input(inputs, generator=None):
    """
    Build a negative sample by permuting the input components

    Args:
        inputs (sequence or torch.Tensor): Positive input
        generator (torch.Generator, optional): Random source

    Returns:
        torch.Tensor: Input with its entries shuffled
    """
    x = as_vector(inputs)
    perm = torch.randperm(x.shape[0], generator=generator)
    return x[perm]
