"""
Heuristic sensitivity classification.

Scores a video from its duration, resolution and frame rate. This stands in
for a real content moderation model; each heuristic is a separate rule so
rules can be swapped or removed without touching the scoring.

Rules are additive and independent:

    duration < 5s               +15  very_short_duration
    duration > 7200s            +5   very_long_duration
    width < 320 or height < 240 +20  low_resolution
    frame rate > 60             +10  high_frame_rate
    random draw < rate          +30  automatic_detection

The final score is capped at 100 and a video is flagged at 50 or more.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from videovault.config import settings
from videovault.models.video import SensitivityStatus

logger = logging.getLogger(__name__)

FLAG_THRESHOLD = 50
MAX_SCORE = 100

FLAGGED_REASON = "Video flagged for sensitivity review"
SAFE_REASON = "Video passed sensitivity checks"


@dataclass(frozen=True)
class VideoSignal:
    """Inputs the classifier looks at. Any field may be unknown."""
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    frame_rate: Optional[float] = None

    @classmethod
    def from_mapping(cls, signal: dict) -> "VideoSignal":
        """Accept {duration, resolution: {width, height}, frameRate}."""
        resolution = signal.get("resolution") or {}
        return cls(
            duration=signal.get("duration"),
            width=resolution.get("width"),
            height=resolution.get("height"),
            frame_rate=signal.get("frameRate", signal.get("frame_rate")),
        )


@dataclass
class SensitivityResult:
    status: SensitivityStatus
    score: int
    reason: str
    flags: List[str] = field(default_factory=list)

    @property
    def is_flagged(self) -> bool:
        return self.status == SensitivityStatus.FLAGGED


@dataclass(frozen=True)
class Rule:
    """A single scoring heuristic."""
    flag: str
    points: int
    predicate: Callable[[VideoSignal], bool]

    def applies(self, signal: VideoSignal) -> bool:
        return bool(self.predicate(signal))


def _very_short(signal: VideoSignal) -> bool:
    return signal.duration is not None and signal.duration < 5


def _very_long(signal: VideoSignal) -> bool:
    return signal.duration is not None and signal.duration > 7200


def _low_resolution(signal: VideoSignal) -> bool:
    return (signal.width is not None and signal.width < 320) or (
        signal.height is not None and signal.height < 240
    )


def _high_frame_rate(signal: VideoSignal) -> bool:
    return signal.frame_rate is not None and signal.frame_rate > 60


VERY_SHORT_DURATION = Rule("very_short_duration", 15, _very_short)
VERY_LONG_DURATION = Rule("very_long_duration", 5, _very_long)
LOW_RESOLUTION = Rule("low_resolution", 20, _low_resolution)
HIGH_FRAME_RATE = Rule("high_frame_rate", 10, _high_frame_rate)

HEURISTIC_RULES = (VERY_SHORT_DURATION, VERY_LONG_DURATION, LOW_RESOLUTION, HIGH_FRAME_RATE)


class RandomDetectionRule:
    """
    Placeholder for a real detector: fires with probability `rate`.

    Non-deterministic unless a seeded `rng` is supplied.
    """

    flag = "automatic_detection"
    points = 30

    def __init__(self, rate: float = 0.2, rng: Optional[random.Random] = None):
        self.rate = rate
        self.rng = rng or random.Random()

    def applies(self, signal: VideoSignal) -> bool:
        return self.rng.random() < self.rate


class SensitivityClassifier:
    """Pure function from a video signal to a risk assessment."""

    def __init__(self, rules: Sequence = HEURISTIC_RULES):
        self.rules = list(rules)

    @classmethod
    def from_settings(cls, app_settings=None) -> "SensitivityClassifier":
        app_settings = app_settings or settings
        rules = list(HEURISTIC_RULES)
        if app_settings.SENSITIVITY_RANDOM_RATE > 0:
            rng = random.Random(app_settings.SENSITIVITY_RANDOM_SEED)
            rules.append(RandomDetectionRule(app_settings.SENSITIVITY_RANDOM_RATE, rng))
        return cls(rules)

    def classify(self, signal) -> SensitivityResult:
        if isinstance(signal, dict):
            signal = VideoSignal.from_mapping(signal)

        score = 0
        flags = []
        for rule in self.rules:
            if rule.applies(signal):
                score += rule.points
                if rule.flag not in flags:
                    flags.append(rule.flag)

        score = min(score, MAX_SCORE)
        flagged = score >= FLAG_THRESHOLD
        logger.debug(f"Sensitivity score {score} with flags {flags}")

        return SensitivityResult(
            status=SensitivityStatus.FLAGGED if flagged else SensitivityStatus.SAFE,
            score=score,
            reason=FLAGGED_REASON if flagged else SAFE_REASON,
            flags=flags,
        )
