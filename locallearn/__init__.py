"""
Local Learning Simulation Engine
================================

A small PyTorch engine for biologically inspired local learning in layered networks.

Three variants share one relaxation and state model: predictive coding with a local
Hebbian update, predictive coding with equilibrium propagation and feedback alignment,
and the same combined with Forward-Forward contrastive learning. Each simulation step
consumes an immutable snapshot and produces the next one.
"""

from .config import Phase, SimParams, Variant
from .parameters import ShapeMismatchError, create_feedback, create_weights
from .simulation import Simulation, Snapshot, initialize, step

__version__ = '0.1.0'
