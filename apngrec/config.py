"""
Capture session configuration.

A session is described by a :class:`CaptureConfig`, built in code or
loaded from YAML::

    duration: 5            # seconds
    interval: 100          # milliseconds between captures
    region: [0, 0, 640, 480]
    strategy:
      mode: delta          # full | delta | blackout | blackout-opaque
      timing: immediate    # immediate | buffered | stored
    repeat: 0              # 0 = loop forever
    frame_delay: 100       # optional, defaults to interval
    spool_dir: /tmp        # optional, for timing: stored
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from apngrec.encoder import MAX_DELAY_MS
from apngrec.exceptions import ConfigurationError
from apngrec.types import CaptureRegion, EncodingStrategy, FrameMode, Timing


@dataclass
class CaptureConfig:
    """Full configuration for one capture session."""
    duration_s: float
    region: CaptureRegion
    interval_ms: int = 100
    strategy: EncodingStrategy = field(default_factory=EncodingStrategy)
    repeat_count: int = 0
    frame_delay_ms: int | None = None   # None = interval_ms
    spool_dir: Path | None = None

    def validate(self) -> None:
        if self.duration_s <= 0:
            raise ConfigurationError(f"duration must be positive, got {self.duration_s}")
        if self.interval_ms <= 0:
            raise ConfigurationError(f"interval must be positive, got {self.interval_ms}")
        if self.region.width <= 0 or self.region.height <= 0:
            raise ConfigurationError(f"region must have a positive size, got {self.region}")
        if self.repeat_count < 0:
            raise ConfigurationError(f"repeat must not be negative, got {self.repeat_count}")
        delay = self.frame_delay_ms if self.frame_delay_ms is not None else self.interval_ms
        if not 0 < delay <= MAX_DELAY_MS:
            raise ConfigurationError(
                f"frame delay must be between 1 and {MAX_DELAY_MS} ms, got {delay}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaptureConfig:
        try:
            region = CaptureRegion(*(int(v) for v in data["region"]))
            config = cls(
                duration_s=float(data["duration"]),
                region=region,
                interval_ms=int(data.get("interval", 100)),
                strategy=_parse_strategy(data.get("strategy", {})),
                repeat_count=int(data.get("repeat", 0)),
                frame_delay_ms=(int(data["frame_delay"])
                                if data.get("frame_delay") is not None else None),
                spool_dir=Path(data["spool_dir"]) if data.get("spool_dir") else None,
            )
        except KeyError as exc:
            raise ConfigurationError(f"Missing configuration key: {exc.args[0]}") from exc
        except (AttributeError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc
        config.validate()
        return config


def _parse_strategy(data: dict[str, Any] | str | None) -> EncodingStrategy:
    if data is None:
        data = {}
    elif isinstance(data, str):
        data = {"mode": data}
    elif not isinstance(data, dict):
        raise ConfigurationError(
            f"strategy must be a mode name or a mapping, got {type(data).__name__}"
        )
    return EncodingStrategy(
        mode=FrameMode(data.get("mode", FrameMode.FULL.value)),
        timing=Timing(data.get("timing", Timing.IMMEDIATE.value)),
    )


def load_config(path: Path) -> CaptureConfig:
    """Read a :class:`CaptureConfig` from a YAML file."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level")
    return CaptureConfig.from_dict(data)
