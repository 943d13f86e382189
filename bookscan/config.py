# bookscan/config.py
"""
Scanner configuration.

Values come from the same secrets file the Streamlit app reads
(.streamlit/secrets.toml), e.g.:

    [scanner]
    backends = ["native-detector", "library-decoder", "heuristic-analysis"]
    min_confidence = 0.7
    continuous = true
    preferred_facing = "auto"      # auto / environment / user

    [google_vision]
    api_key = "YOUR_OPTIONAL_API_KEY"

    [gcp_service_account]
    type = "service_account"
    ...

    [google_books]
    api_key = "YOUR_OPTIONAL_API_KEY"
"""
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .models import SourceMethod

DEFAULT_SECRETS_PATH = Path(".streamlit") / "secrets.toml"
VISION_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"
FACING_OPTIONS = ("auto", "environment", "user")

DEFAULT_BACKENDS = (
    SourceMethod.NATIVE,
    SourceMethod.LIBRARY,
    SourceMethod.HEURISTIC,
)


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class CloudOCRConfig:
    api_key: Optional[str] = None
    endpoint: str = VISION_ENDPOINT
    service_account: Optional[dict] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key or self.service_account)


@dataclass(frozen=True)
class ScannerConfig:
    preferred_facing: str = "auto"
    enabled_backends: tuple[SourceMethod, ...] = DEFAULT_BACKENDS
    min_confidence: float = 0.7
    continuous: bool = True
    detect_interval: float = 0.5    # seconds between loop iterations
    debounce: float = 2.0           # seconds
    backend_timeout: float = 4.0    # seconds, per backend call
    miss_hint_after: int = 10
    resolution: tuple[int, int] = (1280, 720)
    cloud: CloudOCRConfig = field(default_factory=CloudOCRConfig)
    google_books_key: Optional[str] = None

    def __post_init__(self):
        if self.preferred_facing not in FACING_OPTIONS:
            raise ConfigError(f"preferred_facing must be one of {FACING_OPTIONS}, got {self.preferred_facing!r}")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigError(f"min_confidence must be within [0, 1], got {self.min_confidence}")
        for name in ("detect_interval", "debounce", "backend_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")


def _backends(raw) -> tuple[SourceMethod, ...]:
    try:
        return tuple(SourceMethod(b) for b in raw)
    except ValueError as e:
        raise ConfigError(f"Unknown recognition backend: {e}") from None


def load_config(secrets: Mapping) -> ScannerConfig:
    """
    Build a ScannerConfig from a secrets mapping (st.secrets or a parsed TOML
    file). The cloud OCR backend joins the default set only when credentials
    are present; an explicit [scanner].backends list always wins.
    """
    section = dict(secrets.get("scanner", {}) or {})
    vision = dict(secrets.get("google_vision", {}) or {})
    service_account = secrets.get("gcp_service_account")

    cloud = CloudOCRConfig(
        api_key=vision.get("api_key") or None,
        endpoint=vision.get("endpoint", VISION_ENDPOINT),
        service_account=dict(service_account) if service_account else None,
    )

    if "backends" in section:
        enabled = _backends(section["backends"])
    else:
        enabled = DEFAULT_BACKENDS + ((SourceMethod.CLOUD_OCR,) if cloud.configured else ())

    kwargs = {}
    for key, cast in (
        ("preferred_facing", str),
        ("min_confidence", float),
        ("continuous", bool),
        ("detect_interval", float),
        ("debounce", float),
        ("backend_timeout", float),
        ("miss_hint_after", int),
    ):
        if key in section:
            try:
                kwargs[key] = cast(section[key])
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid value for [scanner].{key}: {section[key]!r}") from None
    if "resolution" in section:
        w, h = section["resolution"]
        kwargs["resolution"] = (int(w), int(h))

    return ScannerConfig(
        enabled_backends=enabled,
        cloud=cloud,
        google_books_key=(secrets.get("google_books", {}) or {}).get("api_key") or None,
        **kwargs,
    )


def load_config_file(path: Path | str = DEFAULT_SECRETS_PATH) -> ScannerConfig:
    path = Path(path)
    if not path.exists():
        return ScannerConfig()
    with path.open("rb") as fh:
        return load_config(tomllib.load(fh))
