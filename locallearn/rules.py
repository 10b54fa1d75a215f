"""
Learning-Rule Engines

Interchangeable local weight-update strategies. Each rule reads the activation
states produced by the relaxation engine and returns a brand-new tuple of weight
tensors; neither the weights nor the states passed in are modified.

Rules can be chained with ComposedRule, which simply feeds the weights returned by
one rule into the next.
"""

from dataclasses import dataclass
from enum import Enum

from .relaxation import prediction_errors
from .tensor_ops import goodness, outer, project, sigmoid


@dataclass(frozen=True)
class PhaseStates:
    """Activation states available to a learning rule."""

    free: tuple
    nudged: tuple = None
    negative: tuple = None


class RuleKind(Enum):
    HEBBIAN_PC = "hebbian_pc"
    FEEDBACK_ALIGNMENT = "feedback_alignment"
    FORWARD_FORWARD = "forward_forward"


class LearningRule:
    """
    Base class for local learning rules

    Subclasses implement update(weights, phases, params) and return new weights.
    """

    kind = None

    def update(self, weights, phases, params):
        raise NotImplementedError

    def __call__(self, weights, phases, params):
        return self.update(weights, phases, params)


class HebbianPCRule(LearningRule):
    """
    Error-driven Hebbian update for predictive coding

    Each transition is updated with the outer product of the upper layer's activity
    and the lower layer's prediction error, using only quantities local to it.
    """

    kind = RuleKind.HEBBIAN_PC

    def update(self, weights, phases, params):
        states = phases.free
        errors = prediction_errors(states, weights)
        return tuple(
            w + params.alpha_learn * outer(states[l + 1], errors[l])
            for l, w in enumerate(weights)
        )


class FeedbackAlignmentRule(LearningRule):
    """
    Feedback alignment driven by the free/nudged output discrepancy

    Args:
        feedback (sequence of torch.Tensor): Fixed random matrices, one per transition,
            each of shape (units downstream, units at the output). Never updated.
    """

    kind = RuleKind.FEEDBACK_ALIGNMENT

    def __init__(self, feedback):
        self.feedback = tuple(feedback)

    def update(self, weights, phases, params):
        free, nudged = phases.free, phases.nudged
        if nudged is None:
            return tuple(w.clone() for w in weights)

        e = nudged[-1] - free[-1]
        new_weights = []
        for l, w in enumerate(weights):
            signal = self.feedback[l] @ e
            delta = signal * (1.0 - free[l + 1] ** 2)
            new_weights.append(w + params.alpha_learn * outer(delta, free[l]))
        return tuple(new_weights)


def _contrast(g_pos, g_neg, theta):
    return float(sigmoid(g_pos - theta) - sigmoid(g_neg - theta))


class ForwardForwardRule(LearningRule):
    """
    Forward-Forward contrastive goodness update

    For every transition the positive-phase and negative-phase layer inputs are
    projected forward; a single scalar contrast, sigmoid(g_pos - theta) minus
    sigmoid(g_neg - theta), scales a Hebbian term on the positive pair and an
    anti-Hebbian term on the negative pair.
    """

    kind = RuleKind.FORWARD_FORWARD

    def update(self, weights, phases, params):
        positive, negative = phases.free, phases.negative
        if negative is None:
            return tuple(w.clone() for w in weights)

        new_weights = []
        for l, w in enumerate(weights):
            pos_in, neg_in = positive[l], negative[l]
            pos_out = project(pos_in, w)
            neg_out = project(neg_in, w)
            contrast = _contrast(goodness(pos_out), goodness(neg_out), params.theta_ff)
            hebb = outer(pos_out, pos_in) - outer(neg_out, neg_in)
            new_weights.append(w + params.alpha_learn * contrast * hebb)
        return tuple(new_weights)


class ComposedRule(LearningRule):
    """Apply several rules in sequence, each on the previous rule's output."""

    def __init__(self, rules):
        self.rules = tuple(rules)

    def update(self, weights, phases, params):
        current = tuple(weights)
        for rule in self.rules:
            current = rule.update(current, phases, params)
        return current


def layer_goodness(weights, positive, negative):
    """
    Goodness of each transition's output under positive and negative input

    Args:
        weights (sequence of torch.Tensor): Forward weights
        positive (sequence of torch.Tensor): Positive-phase state
        negative (sequence of torch.Tensor): Negative-phase state

    Returns:
        tuple: (pos, neg), each a tuple with one float per transition
    """
    pos = tuple(goodness(project(positive[l], w)) for l, w in enumerate(weights))
    neg = tuple(goodness(project(negative[l], w)) for l, w in enumerate(weights))
    return pos, neg


def build_rule(kind, feedback=None):
    """
    Create a rule from its kind

    Args:
        kind (RuleKind or str): Rule to build
        feedback (sequence of torch.Tensor, optional): Required for feedback alignment

    Returns:
        LearningRule: The rule instance
    """
    kind = RuleKind(kind)
    if kind is RuleKind.HEBBIAN_PC:
        return HebbianPCRule()
    if kind is RuleKind.FEEDBACK_ALIGNMENT:
        if not feedback:
            raise ValueError("feedback alignment needs feedback matrices")
        return FeedbackAlignmentRule(feedback)
    return ForwardForwardRule()


def compose(kinds, feedback=None):
    rules = [build_rule(kind, feedback) for kind in kinds]
    if len(rules) == 1:
        return rules[0]
    return ComposedRule(rules)
