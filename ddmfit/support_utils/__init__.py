from .utils import make_rng, spawn_rngs

__all__ = ["make_rng", "spawn_rngs"]
