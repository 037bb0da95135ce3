"""Hand landmark backends and a name registry for the detection runtime."""

from typing import Callable, Dict

from signspell.detector.backends.base import DetectedHand, HandLandmarkBackend

BackendFactory = Callable[..., HandLandmarkBackend]

_REGISTRY: Dict[str, BackendFactory] = {}


def register_backend(name: str, factory: BackendFactory) -> None:
    """Register a backend factory under ``name`` (replaces any existing one)."""
    _REGISTRY[name] = factory


def create_backend(name: str, **kwargs) -> HandLandmarkBackend:
    """Instantiate a registered backend.

    Raises:
        KeyError: If no backend is registered under ``name``.
    """
    if name not in _REGISTRY:
        raise KeyError(
            f"Unknown hand backend {name!r}, available: {sorted(_REGISTRY)}"
        )
    return _REGISTRY[name](**kwargs)


def available_backends() -> list:
    return sorted(_REGISTRY)


def _mediapipe(**kwargs) -> HandLandmarkBackend:
    from signspell.detector.backends.mediapipe_hands import MediaPipeHandsBackend

    return MediaPipeHandsBackend(**kwargs)


register_backend("mediapipe", _mediapipe)

__all__ = [
    "DetectedHand",
    "HandLandmarkBackend",
    "register_backend",
    "create_backend",
    "available_backends",
]
