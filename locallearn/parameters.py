"""
Parameter Initializer

Builds forward weight tensors, fixed random feedback tensors and zeroed activation
states from a layer-size schedule, and checks that externally supplied tensors agree
with the schedule.

Shape conventions (L = number of layers):
    W[l]: (sizes[l + 1], sizes[l])   for l in 0 .. L - 2
    B[l]: (sizes[l + 1], sizes[-1])  for l in 0 .. L - 2
    R[l]: (sizes[l],)                for l in 0 .. L - 1
"""

import logging

import torch

from .tensor_ops import DTYPE

logger = logging.getLogger(__name__)

WEIGHT_SCALE = 0.05


class ShapeMismatchError(ValueError):
    """Raised when a layer schedule and its tensors disagree."""


def validate_layer_sizes(layer_sizes):
    """
    Check a layer schedule and return it as a tuple of ints

    Args:
        layer_sizes (sequence of int): Units per layer, sensory layer first

    Returns:
        tuple: The validated schedule

    Raises:
        ShapeMismatchError: If there are fewer than two layers or a size is not a positive int
    """
    sizes = tuple(layer_sizes)
    if len(sizes) < 2:
        raise ShapeMismatchError(f"layer schedule needs at least 2 layers, got {len(sizes)}")
    for i, size in enumerate(sizes):
        if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
            raise ShapeMismatchError(f"layer {i} size must be a positive int, got {size!r}")
    return sizes


def _uniform(rows, cols, generator, scale):
    return (torch.rand(rows, cols, generator=generator, dtype=DTYPE) * 2.0 - 1.0) * scale


def create_weights(layer_sizes, generator=None, scale=WEIGHT_SCALE):
    """
    Create forward weights for every transition

    Args:
        layer_sizes (sequence of int): Units per layer
        generator (torch.Generator, optional): Random source. Defaults to the global one.
        scale (float, optional): Half-width of the uniform interval. Defaults to 0.05.

    Returns:
        tuple: One (sizes[l + 1], sizes[l]) tensor per transition
    """
    sizes = validate_layer_sizes(layer_sizes)
    return tuple(_uniform(n_next, n, generator, scale) for n, n_next in zip(sizes[:-1], sizes[1:]))


def create_feedback(layer_sizes, generator=None, scale=WEIGHT_SCALE):
    """
    Create fixed random feedback matrices

    Each matrix maps an output-layer error back onto the downstream layer of its
    transition, so the row width is the output size rather than the adjacent size.

    Args:
        layer_sizes (sequence of int): Units per layer
        generator (torch.Generator, optional): Random source. Defaults to the global one.
        scale (float, optional): Half-width of the uniform interval. Defaults to 0.05.

    Returns:
        tuple: One (sizes[l + 1], sizes[-1]) tensor per transition
    """
    sizes = validate_layer_sizes(layer_sizes)
    n_out = sizes[-1]
    return tuple(_uniform(n_next, n_out, generator, scale) for n_next in sizes[1:])


def zero_weights(layer_sizes):
    sizes = validate_layer_sizes(layer_sizes)
    return tuple(torch.zeros(n_next, n, dtype=DTYPE) for n, n_next in zip(sizes[:-1], sizes[1:]))


def create_states(layer_sizes):
    """All-zero activation state, one vector per layer."""
    sizes = validate_layer_sizes(layer_sizes)
    return tuple(torch.zeros(n, dtype=DTYPE) for n in sizes)


def check_shapes(layer_sizes, weights, feedback=None, states=None):
    """
    Verify tensors against a layer schedule

    Args:
        layer_sizes (sequence of int): Units per layer
        weights (sequence of torch.Tensor): Forward weights
        feedback (sequence of torch.Tensor, optional): Feedback matrices. Skipped if None or empty.
        states (sequence of torch.Tensor, optional): An activation state. Skipped if None.

    Raises:
        ShapeMismatchError: On the first tensor whose count or shape disagrees
    """
    sizes = validate_layer_sizes(layer_sizes)
    n_transitions = len(sizes) - 1

    if len(weights) != n_transitions:
        raise ShapeMismatchError(
            f"expected {n_transitions} weight tensors for schedule {sizes}, got {len(weights)}"
        )
    for l, w in enumerate(weights):
        expected = (sizes[l + 1], sizes[l])
        if tuple(w.shape) != expected:
            raise ShapeMismatchError(f"weight {l} has shape {tuple(w.shape)}, expected {expected}")

    if feedback:
        if len(feedback) != n_transitions:
            raise ShapeMismatchError(
                f"expected {n_transitions} feedback tensors for schedule {sizes}, got {len(feedback)}"
            )
        for l, b in enumerate(feedback):
            expected = (sizes[l + 1], sizes[-1])
            if tuple(b.shape) != expected:
                raise ShapeMismatchError(f"feedback {l} has shape {tuple(b.shape)}, expected {expected}")

    if states is not None:
        if len(states) != len(sizes):
            raise ShapeMismatchError(f"expected {len(sizes)} state vectors, got {len(states)}")
        for l, r in enumerate(states):
            if tuple(r.shape) != (sizes[l],):
                raise ShapeMismatchError(f"state {l} has shape {tuple(r.shape)}, expected ({sizes[l]},)")

    logger.debug("Shapes consistent with schedule %s", sizes)
