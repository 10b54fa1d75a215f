"""
Local Learning Simulation Example

This script runs one of the local learning variants on the synthetic sinusoid
input/target stream and reports the energy, the per-layer activity and, for the
Forward-Forward variant, the goodness separation.
"""

import argparse
import logging
import os

# Add parent directory to path to import locallearn
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from locallearn.config import DEFAULT_LAYER_SIZES, SimParams, Variant
from locallearn.simulation import Simulation
from locallearn.utils import (
    layer_activity,
    plot_energy_history,
    plot_goodness,
    visualize_layer_states,
)


def main():
    # Parse arguments
    parser = argparse.ArgumentParser(description='Local Learning Simulation Example')
    parser.add_argument('--variant', type=str, default='ep_fa',
                        choices=[v.value for v in Variant], help='Algorithm variant')
    parser.add_argument('--steps', type=int, default=200, help='Number of simulation steps')
    parser.add_argument('--layers', type=int, nargs='+', default=list(DEFAULT_LAYER_SIZES),
                        help='Units per layer, sensory layer first')
    parser.add_argument('--seed', type=int, default=0, help='Random seed')
    parser.add_argument('--eta-infer', type=float, default=0.05, help='Relaxation rate')
    parser.add_argument('--alpha-learn', type=float, default=0.001, help='Learning rate')
    parser.add_argument('--beta-ep', type=float, default=0.01, help='Nudging strength')
    parser.add_argument('--theta-ff', type=float, default=2.0, help='Goodness threshold')
    parser.add_argument('--t-steps', type=int, default=20, help='Predictive coding relaxation steps')
    parser.add_argument('--deepest-layer', type=str, default='fixed',
                        choices=['fixed', 'relax', 'clamp'],
                        help='Deepest layer treatment for predictive coding')
    parser.add_argument('--save-dir', type=str, default=None, help='Directory for plots')
    parser.add_argument('--verbose', action='store_true', help='Log every step')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s %(message)s',
    )

    params = SimParams(
        eta_infer=args.eta_infer,
        alpha_learn=args.alpha_learn,
        beta_ep=args.beta_ep,
        theta_ff=args.theta_ff,
        t_steps=args.t_steps,
    )

    sim = Simulation(args.layers, variant=args.variant, seed=args.seed,
                     deepest_layer=args.deepest_layer)
    energies = sim.run(args.steps, params, progress=True)
    snapshot = sim.snapshot

    print(f"Step {snapshot.step}, phase {snapshot.phase.value}, energy {energies[-1]:.6e}")
    for i, layer in enumerate(layer_activity(snapshot)):
        print(f"  L{i} (dim {layer['size']}): free {layer['free']:.4f}, "
              f"nudged {layer['nudged']:.4f}, delta {layer['delta']:.4f}")
    if sim.variant is Variant.EP_FA_FF:
        pos, neg = snapshot.goodness
        for i, (g_pos, g_neg) in enumerate(zip(pos, neg)):
            print(f"  W{i} goodness: positive {g_pos:.4f}, negative {g_neg:.4f}")

    if args.save_dir:
        os.makedirs(args.save_dir, exist_ok=True)
        plot_energy_history(snapshot.history).savefig(os.path.join(args.save_dir, 'energy.png'))
        visualize_layer_states(snapshot).savefig(os.path.join(args.save_dir, 'layer_states.png'))
        if sim.variant is Variant.EP_FA_FF:
            plot_goodness(snapshot).savefig(os.path.join(args.save_dir, 'goodness.png'))
        print(f"Plots saved to {args.save_dir}")


if __name__ == '__main__':
    main()
