"""
Basic tests for the tensor utilities, parameter initializer and relaxation engine.
"""

import torch
import pytest
import sys
import os

# Add parent directory to path to import locallearn
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from locallearn.tensor_ops import goodness, predict_down, project, safe_mean, subtract
from locallearn.parameters import (
    ShapeMismatchError,
    check_shapes,
    create_feedback,
    create_states,
    create_weights,
    validate_layer_sizes,
    zero_weights,
)
from locallearn.relaxation import (
    corrupt_input,
    prediction_errors,
    relax_layered,
    relax_pc,
)

SCHEDULES = [(4, 3, 2), (16, 32, 16, 4), (2, 1), (5, 5, 5, 5, 5)]


def test_project_and_predict_down():
    """Test projection shapes and saturation"""
    w = torch.ones(3, 4, dtype=torch.float64) * 0.5
    x = torch.ones(4, dtype=torch.float64)

    y = project(x, w)
    assert y.shape == (3,)
    assert torch.all(y < 1.0)

    down = predict_down(y, w)
    assert down.shape == (4,)
    assert torch.all(down.abs() < 1.0)


def test_goodness_and_safe_mean():
    """Test goodness and zero-safe averaging"""
    y = torch.tensor([0.5, -0.5, 1.0], dtype=torch.float64)
    assert goodness(y) == pytest.approx(1.5)
    assert safe_mean(torch.zeros(0, dtype=torch.float64)) == 0.0
    assert safe_mean(y) == pytest.approx(1.0 / 3.0)


def test_subtract_missing_entries():
    """Test that missing subtrahend entries count as zero"""
    a = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)
    b = torch.tensor([0.5], dtype=torch.float64)

    assert torch.equal(subtract(a, b), torch.tensor([0.5, 2.0, 3.0], dtype=torch.float64))
    assert torch.equal(subtract(a, None), a)


@pytest.mark.parametrize("sizes", SCHEDULES)
def test_weight_and_feedback_shapes(sizes):
    """Test tensor shapes for a schedule"""
    weights = create_weights(sizes)
    feedback = create_feedback(sizes)

    assert len(weights) == len(sizes) - 1
    assert len(feedback) == len(sizes) - 1
    for l, (w, b) in enumerate(zip(weights, feedback)):
        assert w.shape == (sizes[l + 1], sizes[l])
        assert b.shape == (sizes[l + 1], sizes[-1])
        assert torch.all(w.abs() <= 0.05)
        assert torch.all(b.abs() <= 0.05)

    check_shapes(sizes, weights, feedback, create_states(sizes))


def test_seeded_initialization_is_deterministic():
    """Test that the same seed gives identical tensors"""
    first = create_weights((16, 32, 16, 4), torch.Generator().manual_seed(7))
    second = create_weights((16, 32, 16, 4), torch.Generator().manual_seed(7))
    other = create_weights((16, 32, 16, 4), torch.Generator().manual_seed(8))

    assert all(torch.equal(a, b) for a, b in zip(first, second))
    assert not all(torch.equal(a, b) for a, b in zip(first, other))


@pytest.mark.parametrize("sizes", [(4,), (), (4, 0, 2), (4, -1), (4, 2.5)])
def test_invalid_schedules(sizes):
    """Test that malformed schedules are rejected"""
    with pytest.raises(ShapeMismatchError):
        validate_layer_sizes(sizes)


def test_check_shapes_mismatch():
    """Test structural mismatch detection"""
    sizes = (4, 3, 2)

    with pytest.raises(ShapeMismatchError, match="expected 2 weight tensors"):
        check_shapes(sizes, create_weights((4, 3)))

    transposed = tuple(w.t() for w in create_weights(sizes))
    with pytest.raises(ShapeMismatchError, match="weight 0"):
        check_shapes(sizes, transposed)

    with pytest.raises(ShapeMismatchError, match="feedback"):
        check_shapes(sizes, create_weights(sizes), create_feedback((4, 3, 5)))


@pytest.mark.parametrize("sizes", SCHEDULES)
def test_relaxation_clamps_input(sizes):
    """Test that layer 0 equals the input after every relaxation call"""
    gen = torch.Generator().manual_seed(0)
    weights = create_weights(sizes, gen)
    states = create_states(sizes)
    x = torch.rand(sizes[0], generator=gen, dtype=torch.float64)
    target = torch.rand(sizes[-1], generator=gen, dtype=torch.float64)

    relaxed = relax_pc(x, states, weights, eta=0.1, steps=3)
    assert torch.equal(relaxed[0], x)

    free = relax_layered(x, states, weights, eta=0.1)
    nudged = relax_layered(x, free, weights, eta=0.1, target=target, beta=0.2)
    assert torch.equal(free[0], x)
    assert torch.equal(nudged[0], x)


def test_pc_fixed_point():
    """Test that zero weights and a zero state stay put under relaxation"""
    sizes = (4, 3, 2)
    states = create_states(sizes)

    relaxed = relax_pc([1, 0, 1, 0], states, zero_weights(sizes), eta=0.1, steps=1)

    assert torch.equal(relaxed[0], torch.tensor([1.0, 0.0, 1.0, 0.0], dtype=torch.float64))
    assert torch.equal(relaxed[1], torch.zeros(3, dtype=torch.float64))
    assert torch.equal(relaxed[2], torch.zeros(2, dtype=torch.float64))


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_pc_relaxation_stays_bounded(seed):
    """Test that long relaxation on a bounded input does not explode"""
    sizes = (16, 32, 16, 4)
    gen = torch.Generator().manual_seed(seed)
    x = torch.rand(sizes[0], generator=gen, dtype=torch.float64)

    for weights in (zero_weights(sizes), create_weights(sizes, gen)):
        relaxed = relax_pc(x, create_states(sizes), weights, eta=0.05, steps=50)
        for r in relaxed:
            assert torch.all(r.abs() <= 2.0)


def test_relaxation_does_not_mutate_inputs():
    """Test that the previous state is left untouched"""
    sizes = (4, 3, 2)
    gen = torch.Generator().manual_seed(3)
    weights = create_weights(sizes, gen)
    states = tuple(torch.rand(n, generator=gen, dtype=torch.float64) for n in sizes)
    before = tuple(r.clone() for r in states)
    weights_before = tuple(w.clone() for w in weights)

    relax_pc(torch.ones(4), states, weights, eta=0.1, steps=5)
    relax_layered(torch.ones(4), states, weights, eta=0.1, target=torch.ones(2), beta=0.5)

    assert all(torch.equal(a, b) for a, b in zip(states, before))
    assert all(torch.equal(a, b) for a, b in zip(weights, weights_before))


def test_pc_deepest_layer_modes():
    """Test the explicit deepest layer options"""
    sizes = (4, 2)
    weights = create_weights(sizes, torch.Generator().manual_seed(5))
    states = create_states(sizes)
    x = torch.ones(4, dtype=torch.float64)
    target = torch.tensor([0.25, 0.75], dtype=torch.float64)

    fixed = relax_pc(x, states, weights, eta=0.1, steps=1)
    assert torch.equal(fixed[-1], states[-1])

    relaxed = relax_pc(x, states, weights, eta=0.1, steps=1, deepest_layer="relax")
    expected = 0.1 * (weights[0] @ prediction_errors((x, states[-1]), weights)[0])
    assert torch.allclose(relaxed[-1], expected)

    clamped = relax_pc(x, states, weights, eta=0.1, steps=2, deepest_layer="clamp", target=target)
    assert torch.equal(clamped[-1], target)

    with pytest.raises(ValueError):
        relax_pc(x, states, weights, eta=0.1, steps=0)
    with pytest.raises(ValueError):
        relax_pc(x, states, weights, eta=0.1, steps=1, deepest_layer="bogus")


def test_layered_relaxation_nudge():
    """Test free and nudged output behaviour"""
    sizes = (4, 3, 2)
    weights = create_weights(sizes, torch.Generator().manual_seed(1))
    states = create_states(sizes)
    x = torch.ones(4, dtype=torch.float64)
    target = torch.tensor([1.0, -1.0], dtype=torch.float64)

    free = relax_layered(x, states, weights, eta=0.1)
    assert torch.equal(free[-1], states[-1])
    # Hidden layer moves toward its bottom-up prediction
    assert torch.allclose(free[1], 0.1 * project(x, weights[0]))

    nudged = relax_layered(x, free, weights, eta=0.1, target=target, beta=0.5)
    assert torch.allclose(nudged[-1], 0.5 * target)

    # Only a target without beta is not a nudge
    assert torch.equal(relax_layered(x, free, weights, eta=0.1, target=target)[-1], free[-1])


def test_corrupt_input_is_permutation():
    """Test negative sample generation"""
    x = torch.arange(8, dtype=torch.float64)
    first = corrupt_input(x, torch.Generator().manual_seed(0))
    second = corrupt_input(x, torch.Generator().manual_seed(0))

    assert torch.equal(first, second)
    assert torch.equal(torch.sort(first).values, x)


if __name__ == "__main__":
    pytest.main([__file__])
