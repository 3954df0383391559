"""Circuit breaker configuration."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_ratio: Failure ratio (0-1) inside the sampling window that
            opens the circuit.
        minimum_throughput: Samples required inside the window before the
            ratio is evaluated.
        sampling_period: Rolling window length in seconds.
        open_duration: Seconds to stay ``OPEN`` before allowing a probe.
    """

    failure_ratio: float = 0.5
    minimum_throughput: int = 10
    sampling_period: float = 30.0
    open_duration: float = 30.0

    def __post_init__(self) -> None:
        if not 0.0 < self.failure_ratio <= 1.0:
            raise ValueError("failure_ratio must be > 0 and <= 1")
        if self.minimum_throughput < 1:
            raise ValueError("minimum_throughput must be >= 1")
        if self.sampling_period <= 0:
            raise ValueError("sampling_period must be > 0")
        if self.open_duration < 0:
            raise ValueError("open_duration must be >= 0")
