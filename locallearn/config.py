"""
Simulation configuration

Named numeric knobs consumed by the simulation step, and the closed set of
algorithm variants.
"""

import logging
from dataclasses import dataclass, fields
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_LAYER_SIZES = (16, 32, 16, 4)
HISTORY_LENGTH = 100

# External (camelCase) knob names
_ALIASES = {
    "etaInfer": "eta_infer",
    "alphaLearn": "alpha_learn",
    "betaEp": "beta_ep",
    "thetaFF": "theta_ff",
    "tSteps": "t_steps",
}


@dataclass(frozen=True)
class SimParams:
    """
    Knobs for one simulation step

    Values are advisory: nothing here is range checked, and extreme values are
    expected to destabilize the simulation rather than fail.

    Args:
        eta_infer (float): Relaxation rate. Typical range 0.001 - 0.2.
        alpha_learn (float): Learning rate. Typical range 0.0001 - 0.05.
        beta_ep (float): Nudging strength. Typical range 0.001 - 0.5.
        theta_ff (float): Forward-Forward goodness threshold. Typical range 0.5 - 10.
        t_steps (int): Predictive coding relaxation iterations, at least 1.
    """

    eta_infer: float = 0.05
    alpha_learn: float = 0.001
    beta_ep: float = 0.01
    theta_ff: float = 2.0
    t_steps: int = 20

    @classmethod
    def from_dict(cls, options=None):
        """
        Build parameters from a plain mapping

        Both camelCase (etaInfer) and snake_case (eta_infer) keys are accepted.
        Unknown keys are ignored and missing ones fall back to the defaults.
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (options or {}).items():
            name = _ALIASES.get(key, key)
            if name not in known:
                logger.debug("Ignoring unrecognized option %r", key)
                continue
            if value is None:
                continue
            values[name] = int(value) if name == "t_steps" else float(value)
        return cls(**values)

    def to_dict(self):
        return {alias: getattr(self, name) for alias, name in _ALIASES.items()}


class Phase(Enum):
    """Which activation state the display boundary reads."""

    FREE = "free"
    NUDGED = "nudged"
    INFERENCE = "inference"
    NUDGING = "nudging"
    CONTRAST = "contrast"


class Variant(Enum):
    """Algorithm variants sharing one relaxation and state model."""

    PC = "pc"
    EP_FA = "ep_fa"
    EP_FA_FF = "ep_fa_ff"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("+", "_").replace("-", "_")
        for variant in cls:
            if variant.value == key or variant.name.lower() == key:
                return variant
        raise ValueError(f"unknown variant {value!r}, expected one of {[v.value for v in cls]}")

    @property
    def phases(self):
        """Phase marker cycle, advanced once per step."""
        if self is Variant.PC:
            return (Phase.INFERENCE,)
        if self is Variant.EP_FA:
            return (Phase.FREE, Phase.NUDGED)
        return (Phase.INFERENCE, Phase.NUDGING, Phase.CONTRAST)

    @property
    def uses_feedback(self):
        return self is not Variant.PC
