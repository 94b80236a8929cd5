"""LoadSim: forward-time simulation of genetic load through a bottleneck.

A discrete-generation, individual-based model coupling:
  - A gamma-distributed catalog of deleterious mutation types with
    |s|-dependent dominance (nearly lethal ≈ fully recessive)
  - A segmented genome of genes on freely assorting chromosome groups
  - A demographic schedule (burn-in → bottleneck ramp → plateau → recovery)
  - A proportional carrying-capacity regulator that keeps realized N on the
    scheduled Ne despite load-driven mortality
  - Realized / masked load decomposition and windowed heterozygosity (π)
"""

__version__ = "0.1.0"
