"""Model configurations."""

from .wiener import get_wiener_config


def get_model_config():
    """Return a fresh dictionary of all model configurations."""
    return {
        "wiener": get_wiener_config(),
    }


__all__ = ["get_model_config", "get_wiener_config"]
