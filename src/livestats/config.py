import math
from dataclasses import dataclass
from typing import ClassVar, Tuple


# Percentiles tracked when a caller does not ask for any
DEFAULT_QUANTILES: Tuple[float, ...] = (0.5,)
# Registry entries untouched for this long (seconds) are evicted
DEFAULT_UNUSED_EXPIRATION: float = 86400.0


class DecayConfigError(ValueError):
    """Raised when a decay policy cannot be honoured."""


@dataclass(frozen=True)
class DecayConfig:
    # Applied to every decayable accumulator once per decay step; 1.0 disables decay
    multiplier: float = 1.0
    # Seconds between time-driven decay steps; 0 means no clock-driven decay
    period: float = 0.0
    # Decay one step every N observations; 0 means no count-driven decay
    every: int = 0

    NEVER: ClassVar["DecayConfig"]

    def __post_init__(self) -> None:
        if isinstance(self.every, bool) or not isinstance(self.every, int):
            raise DecayConfigError(f"Count must be a whole number of observations, got {self.every!r}")
        if self.multiplier == 1.0:
            if self.period or self.every:
                raise DecayConfigError("A period or count needs a multiplier < 1")
            return
        if not (0.0 <= self.multiplier < 1.0):  # NaN fails this too
            raise DecayConfigError(f"Multiplier must be in [0, 1), got {self.multiplier!r}")
        if not math.isfinite(self.period) or self.period < 0:
            raise DecayConfigError(f"Period must be a positive number of seconds, got {self.period!r}")
        if self.every < 0:
            raise DecayConfigError(f"Count must be >= 0, got {self.every!r}")
        if self.period and self.every:
            raise DecayConfigError("Decay is driven either by time or by count, not both")

    @classmethod
    def manual(cls, multiplier: float) -> "DecayConfig":
        """Decay one step per explicit ``LiveStats.decay()`` call."""
        return cls(multiplier=multiplier)

    @classmethod
    def timed(cls, multiplier: float, period: float) -> "DecayConfig":
        if period <= 0:
            raise DecayConfigError(f"Period must be positive, got {period!r}")
        return cls(multiplier=multiplier, period=period)

    @classmethod
    def counted(cls, multiplier: float, every: int) -> "DecayConfig":
        if every <= 0:
            raise DecayConfigError(f"Count must be positive, got {every!r}")
        return cls(multiplier=multiplier, every=every)

    @property
    def enabled(self) -> bool:
        return self.multiplier != 1.0

    @property
    def period_ns(self) -> int:
        return int(self.period * 1_000_000_000)

    def to_dict(self) -> dict:
        return {"multiplier": self.multiplier, "period": self.period, "every": self.every}


DecayConfig.NEVER = DecayConfig()
