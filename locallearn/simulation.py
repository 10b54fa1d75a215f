"""
Simulation Driver

This module orchestrates one discrete simulation step: it synthesizes the input
and target, runs the relaxation phases the variant needs, applies the variant's
learning rules and emits the next immutable snapshot. It is the only component
with step semantics and owns the state lifecycle.
"""

import logging
import math
from dataclasses import dataclass, replace

import torch
from tqdm import tqdm

from .config import DEFAULT_LAYER_SIZES, HISTORY_LENGTH, Phase, SimParams, Variant
from .parameters import (
    check_shapes,
    create_feedback,
    create_states,
    create_weights,
    validate_layer_sizes,
)
from .relaxation import (
    DEEPEST_LAYER_MODES,
    corrupt_input,
    prediction_errors,
    relax_layered,
    relax_pc,
)
from .rules import PhaseStates, RuleKind, build_rule, layer_goodness
from .tensor_ops import DTYPE, as_vector, subtract

logger = logging.getLogger(__name__)

RULES = {
    Variant.PC: (RuleKind.HEBBIAN_PC,),
    Variant.EP_FA: (RuleKind.FEEDBACK_ALIGNMENT,),
    Variant.EP_FA_FF: (RuleKind.FEEDBACK_ALIGNMENT, RuleKind.FORWARD_FORWARD),
}


@dataclass(frozen=True)
class Snapshot:
    """
    Complete simulation state after a step

    Tensors held here are never modified; the next step builds new ones.
    """

    variant: Variant
    layer_sizes: tuple
    weights: tuple
    feedback: tuple
    free: tuple
    nudged: tuple
    negative: tuple
    inputs: torch.Tensor
    target: torch.Tensor
    goodness_pos: tuple = ()
    goodness_neg: tuple = ()
    phase: Phase = Phase.INFERENCE
    energy: float = 0.0
    history: tuple = ()
    step: int = 0

    @property
    def goodness(self):
        return self.goodness_pos, self.goodness_neg

    @property
    def active_states(self):
        """The activation state selected by the phase marker."""
        if self.phase in (Phase.NUDGED, Phase.NUDGING):
            return self.nudged
        if self.phase is Phase.CONTRAST:
            return self.negative
        return self.free


def sinusoid_input(step, size):
    return torch.tensor(
        [math.sin(step * 0.1 + i * 0.5) * 0.5 + 0.5 for i in range(size)], dtype=DTYPE
    )


def sinusoid_target(step, size):
    return torch.tensor(
        [math.cos(step * 0.05 + i * 1.5) * 0.5 + 0.5 for i in range(size)], dtype=DTYPE
    )


def initialize(layer_sizes, variant=Variant.EP_FA, generator=None):
    """
    Create the parameters for a new run

    Args:
        layer_sizes (sequence of int): Units per layer
        variant (Variant or str, optional): Algorithm variant. Defaults to EP+FA.
        generator (torch.Generator, optional): Random source

    Returns:
        tuple: (weights, feedback); feedback is empty for the PC variant
    """
    variant = Variant.parse(variant)
    weights = create_weights(layer_sizes, generator)
    feedback = create_feedback(layer_sizes, generator) if variant.uses_feedback else ()
    return weights, feedback


def initial_snapshot(layer_sizes, variant, weights, feedback=()):
    """
    Build the step-0 snapshot around existing parameters

    Raises:
        ShapeMismatchError: If the tensors disagree with the schedule
    """
    variant = Variant.parse(variant)
    sizes = validate_layer_sizes(layer_sizes)
    weights = tuple(weights)
    feedback = tuple(feedback or ())
    if variant.uses_feedback and not feedback:
        raise ValueError(f"variant {variant.value} needs feedback matrices")
    check_shapes(sizes, weights, feedback)

    n_transitions = len(sizes) - 1
    zeros = (0.0,) * n_transitions if variant is Variant.EP_FA_FF else ()
    return Snapshot(
        variant=variant,
        layer_sizes=sizes,
        weights=weights,
        feedback=feedback,
        free=create_states(sizes),
        nudged=create_states(sizes),
        negative=create_states(sizes),
        inputs=torch.zeros(sizes[0], dtype=DTYPE),
        target=torch.zeros(sizes[-1], dtype=DTYPE),
        goodness_pos=zeros,
        goodness_neg=zeros,
        phase=variant.phases[0],
    )


def _energy(top_a, top_b):
    diff = subtract(top_a, top_b)
    return float(torch.sum(diff ** 2))


def step(snapshot, params=None, generator=None, inputs=None, target=None, deepest_layer="fixed"):
    """
    Advance the simulation by one step

    Args:
        snapshot (Snapshot): Previous state, left untouched
        params (SimParams or dict, optional): Knobs; a dict goes through SimParams.from_dict
        generator (torch.Generator, optional): Random source for negative samples
        inputs (sequence or torch.Tensor, optional): Overrides the synthetic input
        target (sequence or torch.Tensor, optional): Overrides the synthetic target
        deepest_layer (str, optional): Deepest-layer mode for predictive coding relaxation

    Returns:
        Snapshot: The next snapshot
    """
    if not isinstance(params, SimParams):
        params = SimParams.from_dict(params)

    variant = snapshot.variant
    sizes = snapshot.layer_sizes
    n = snapshot.step
    x = as_vector(inputs) if inputs is not None else sinusoid_input(n, sizes[0])
    y = as_vector(target) if target is not None else sinusoid_target(n, sizes[-1])

    weights = snapshot.weights
    nudged, negative = snapshot.nudged, snapshot.negative
    goodness_pos, goodness_neg = snapshot.goodness_pos, snapshot.goodness_neg

    if variant is Variant.PC:
        # Fewer than one iteration still runs one
        free = relax_pc(
            x, snapshot.free, weights, params.eta_infer, max(1, int(params.t_steps)),
            deepest_layer=deepest_layer, target=y,
        )
        energy = sum(float(torch.sum(e ** 2)) for e in prediction_errors(free, weights))
        phases = PhaseStates(free=free)
    else:
        free = relax_layered(x, snapshot.free, weights, params.eta_infer)
        nudged = relax_layered(x, free, weights, params.eta_infer, target=y, beta=params.beta_ep)
        if variant is Variant.EP_FA_FF:
            x_neg = corrupt_input(x, generator)
            negative = relax_layered(x_neg, snapshot.negative, weights, params.eta_infer)
        energy = _energy(nudged[-1], free[-1])
        phases = PhaseStates(free=free, nudged=nudged, negative=negative)

    new_weights = tuple(weights)
    for kind in RULES[variant]:
        rule = build_rule(kind, snapshot.feedback)
        if kind is RuleKind.FORWARD_FORWARD:
            # Goodness as seen by the forward-forward rule
            goodness_pos, goodness_neg = layer_goodness(new_weights, free, negative)
        new_weights = rule.update(new_weights, phases, params)

    history = snapshot.history[-(HISTORY_LENGTH - 1):] + (energy,)
    cycle = variant.phases
    logger.debug("step %d energy=%.6g phase=%s", n, energy, cycle[n % len(cycle)].value)

    return replace(
        snapshot,
        weights=new_weights,
        free=free,
        nudged=nudged,
        negative=negative,
        inputs=x,
        target=y,
        goodness_pos=goodness_pos,
        goodness_neg=goodness_neg,
        phase=cycle[n % len(cycle)],
        energy=energy,
        history=history,
        step=n + 1,
    )


class Simulation:
    """
    A single seeded simulation run

    Holds the current snapshot and the random source. Calls must be serialized by
    the caller; nothing here is thread-safe.

    Args:
        layer_sizes (sequence of int, optional): Units per layer. Defaults to (16, 32, 16, 4).
        variant (Variant or str, optional): Algorithm variant. Defaults to EP+FA.
        seed (int, optional): Seed for initialization and negative samples. Random if None.
        deepest_layer (str, optional): Deepest-layer mode for predictive coding. Defaults to "fixed".
    """

    def __init__(self, layer_sizes=DEFAULT_LAYER_SIZES, variant=Variant.EP_FA, seed=None,
                 deepest_layer="fixed"):
        self.layer_sizes = validate_layer_sizes(layer_sizes)
        self.variant = Variant.parse(variant)
        if deepest_layer not in DEEPEST_LAYER_MODES:
            raise ValueError(f"unknown deepest layer mode {deepest_layer!r}, expected one of {DEEPEST_LAYER_MODES}")
        self.deepest_layer = deepest_layer
        self.generator = torch.Generator()
        self.seed = seed if seed is not None else self.generator.seed()
        self.snapshot = None
        self.reset()

    def reset(self, weights=None, feedback=None):
        """
        Re-initialize weights, feedback, states, history and step counter

        Args:
            weights (sequence of torch.Tensor, optional): Use these weights instead of random ones
            feedback (sequence of torch.Tensor, optional): Use these feedback matrices

        Returns:
            Snapshot: The fresh snapshot
        """
        self.generator.manual_seed(self.seed)
        random_weights, random_feedback = initialize(self.layer_sizes, self.variant, self.generator)
        if weights is None:
            weights = random_weights
        else:
            weights = tuple(torch.as_tensor(w, dtype=DTYPE).clone() for w in weights)
        if feedback is None:
            feedback = random_feedback
        else:
            feedback = tuple(torch.as_tensor(b, dtype=DTYPE).clone() for b in feedback)
        self.snapshot = initial_snapshot(self.layer_sizes, self.variant, weights, feedback)
        logger.info(
            "Initialized %s simulation with layers %s (seed %d)",
            self.variant.value, self.layer_sizes, self.seed,
        )
        return self.snapshot

    def step(self, params=None, inputs=None, target=None):
        self.snapshot = step(
            self.snapshot, params, self.generator, inputs, target, self.deepest_layer
        )
        return self.snapshot

    def run(self, n_steps, params=None, progress=False):
        """
        Advance several steps

        Args:
            n_steps (int): Number of steps
            params (SimParams or dict, optional): Knobs used for every step
            progress (bool, optional): Show a progress bar. Defaults to False.

        Returns:
            list: Energy after each step
        """
        if not isinstance(params, SimParams):
            params = SimParams.from_dict(params)
        energies = []
        with tqdm(range(n_steps), desc=f"{self.variant.value}", disable=not progress) as pbar:
            for _ in pbar:
                snapshot = self.step(params)
                energies.append(snapshot.energy)
                pbar.set_postfix({"energy": snapshot.energy})
        return energies

    @property
    def active_states(self):
        return self.snapshot.active_states
