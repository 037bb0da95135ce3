"""Configuration classes for signspell.

Every tunable of the capture pipeline lives here. The defaults reproduce
the reference tuning; all of them are empirical and meant to be
overridden from YAML or the command line.

Example:
    >>> from signspell.config import AppConfig
    >>> config = AppConfig.from_yaml("signspell.yaml")
    >>> config.capture.interval_ms
    1500
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Type, TypeVar

DEFAULT_API_URL = "https://production-model.onrender.com"

LANGUAGE_TAGS: Dict[str, str] = {
    "en": "en-US",
    "sw": "sw-KE",
}

_T = TypeVar("_T")


def _from_section(cls: Type[_T], data: Dict[str, Any]) -> _T:
    """Build a flat dataclass from a dict, rejecting unknown keys."""
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"Unknown {cls.__name__} keys: {', '.join(sorted(unknown))}"
        )
    return cls(**data)


@dataclass
class DetectorConfig:
    """Detection runtime and bridge settings.

    Attributes:
        timeout_sec: Per-request wait before a detection resolves as no hand.
        ready_timeout_sec: How long to wait for the runtime's ready signal.
        backend: Hand landmark backend name loaded by the runtime.
        isolation: "process" (ZeroMQ subprocess) or "inline" (same process).
        jpeg_quality: JPEG quality for images sent to the runtime (0-100).
        min_detection_confidence: Backend hand detection threshold.
        min_presence_confidence: Backend hand presence threshold.
        min_tracking_confidence: Backend tracking threshold.
    """

    timeout_sec: float = 15.0
    ready_timeout_sec: float = 60.0
    backend: str = "mediapipe"
    isolation: str = "process"
    jpeg_quality: int = 80
    min_detection_confidence: float = 0.7
    min_presence_confidence: float = 0.5
    min_tracking_confidence: float = 0.5

    def __post_init__(self) -> None:
        if self.isolation not in ("process", "inline"):
            raise ValueError(
                f"isolation must be 'process' or 'inline', got {self.isolation!r}"
            )
        if self.timeout_sec <= 0:
            raise ValueError("timeout_sec must be positive")

    def backend_kwargs(self) -> Dict[str, Any]:
        return {
            "min_detection_confidence": self.min_detection_confidence,
            "min_presence_confidence": self.min_presence_confidence,
            "min_tracking_confidence": self.min_tracking_confidence,
        }


@dataclass
class AdmissionConfig:
    """Frame admission (rate limiting) policy.

    Attributes:
        frame_skip: Admit only every Nth call.
        min_interval_ms: Minimum time between admitted cycles.
        enable_throttling: When False, frame_skip is ignored.
    """

    frame_skip: int = 1
    min_interval_ms: int = 100
    enable_throttling: bool = True

    def __post_init__(self) -> None:
        if self.frame_skip < 1:
            raise ValueError("frame_skip must be >= 1")
        if self.min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0")


@dataclass
class StabilityConfig:
    """Pose stability thresholds.

    Attributes:
        distance_threshold: Mean landmark distance above which a pose is new.
        stability_frames: Consecutive similar frames needed before submitting.
    """

    distance_threshold: float = 0.035
    stability_frames: int = 2

    def __post_init__(self) -> None:
        if self.distance_threshold <= 0:
            raise ValueError("distance_threshold must be positive")
        if self.stability_frames < 2:
            raise ValueError("stability_frames must be >= 2")


@dataclass
class CaptureConfig:
    """Auto-capture loop settings.

    Attributes:
        interval_ms: Timer period of the auto-capture loop.
        duplicate_cooldown_ms: Window in which a repeated letter is dropped.
        speak_letters: Speak each accepted letter.
        history_size: Number of predictions kept for display.
        admission: Frame admission policy.
        stability: Pose stability thresholds.
    """

    interval_ms: int = 1500
    duplicate_cooldown_ms: int = 2000
    speak_letters: bool = True
    history_size: int = 50
    admission: AdmissionConfig = field(default_factory=AdmissionConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaptureConfig":
        data = dict(data)
        admission = _from_section(AdmissionConfig, data.pop("admission", {}) or {})
        stability = _from_section(StabilityConfig, data.pop("stability", {}) or {})
        config = _from_section(cls, data)
        config.admission = admission
        config.stability = stability
        return config


@dataclass
class ClassifierConfig:
    """Remote classifier endpoint settings.

    Attributes:
        base_url: Classifier service root URL.
        predict_path: Path of the prediction endpoint.
        health_path: Path of the health endpoint.
        timeout_sec: Request timeout.
        health_timeout_sec: Health check timeout.
        retry_attempts: Total attempts for transport failures.
        retry_delay_sec: Backoff base; attempt n waits base * 2^(n-1).
    """

    base_url: str = DEFAULT_API_URL
    predict_path: str = "/predict"
    health_path: str = "/health"
    timeout_sec: float = 10.0
    health_timeout_sec: float = 5.0
    retry_attempts: int = 3
    retry_delay_sec: float = 1.0

    def __post_init__(self) -> None:
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")


@dataclass
class SpeechConfig:
    """Speech output settings.

    Attributes:
        enabled: Speak at all.
        backend: "pyttsx3" or "null".
        language: "en" or "sw".
        rate: Relative speaking rate (1.0 = engine default).
    """

    enabled: bool = True
    backend: str = "pyttsx3"
    language: str = "sw"
    rate: float = 0.85

    def __post_init__(self) -> None:
        if self.language not in LANGUAGE_TAGS:
            raise ValueError(
                f"Unsupported language {self.language!r}, "
                f"expected one of {sorted(LANGUAGE_TAGS)}"
            )


@dataclass
class AppConfig:
    """Complete signspell configuration.

    Example:
        >>> config = AppConfig.from_dict({
        ...     "classifier": {"base_url": "http://localhost:8000"},
        ...     "capture": {"interval_ms": 1000, "stability": {"stability_frames": 3}},
        ... })
    """

    detector: DetectorConfig = field(default_factory=DetectorConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    camera_index: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """Create AppConfig from a dictionary (e.g., loaded from YAML).

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        data = dict(data or {})
        detector = _from_section(DetectorConfig, data.pop("detector", {}) or {})
        capture = CaptureConfig.from_dict(data.pop("capture", {}) or {})
        classifier = _from_section(ClassifierConfig, data.pop("classifier", {}) or {})
        speech = _from_section(SpeechConfig, data.pop("speech", {}) or {})
        camera_index = data.pop("camera_index", 0)
        if data:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(data))}")
        return cls(
            detector=detector,
            capture=capture,
            classifier=classifier,
            speech=speech,
            camera_index=camera_index,
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "AppConfig":
        """Load AppConfig from a YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
        """
        import yaml

        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary (YAML-serializable)."""
        return {
            "detector": _section_dict(self.detector),
            "capture": {
                **{
                    k: v for k, v in _section_dict(self.capture).items()
                    if k not in ("admission", "stability")
                },
                "admission": _section_dict(self.capture.admission),
                "stability": _section_dict(self.capture.stability),
            },
            "classifier": _section_dict(self.classifier),
            "speech": _section_dict(self.speech),
            "camera_index": self.camera_index,
        }


def _section_dict(section: Any) -> Dict[str, Any]:
    return {f.name: getattr(section, f.name) for f in fields(section)}


__all__ = [
    "DEFAULT_API_URL",
    "LANGUAGE_TAGS",
    "DetectorConfig",
    "AdmissionConfig",
    "StabilityConfig",
    "CaptureConfig",
    "ClassifierConfig",
    "SpeechConfig",
    "AppConfig",
]
