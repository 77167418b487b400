"""Module A: Emission Schedule - Linear reward generation over a fixed window.

The schedule emits ``rate_per_second`` reward units every second between
``start_time`` and ``end_time``. Outside that window nothing is generated.
"""

from dataclasses import dataclass, field


@dataclass
class EmissionSchedule:
    """Global emission window and per-second rate."""
    start_time: int  # Unix seconds
    end_time: int  # Unix seconds
    rate_per_second: int  # Reward base units per second
    emitted_before: int = field(default=0, repr=False)  # Reward fixed by earlier rates
    rate_since: int = field(default=0, repr=False)

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Emission end ({self.end_time}) must be after start ({self.start_time})"
            )
        if self.rate_per_second < 0:
            raise ValueError(f"Emission rate must be non-negative, got {self.rate_per_second}")
        self.rate_since = max(self.rate_since, self.start_time)

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    @property
    def total_reward_budget(self) -> int:
        """Reward emitted over the whole window, honouring past rate changes."""
        remaining = max(0, self.end_time - self.rate_since)
        return self.emitted_before + self.rate_per_second * remaining

    def change_rate(self, rate_per_second: int, now: int):
        """Switch to a new rate from ``now``; earlier seconds keep the old rate."""
        if rate_per_second < 0:
            raise ValueError(f"Emission rate must be non-negative, got {rate_per_second}")
        pivot = min(max(now, self.rate_since), self.end_time)
        self.emitted_before += self.generated_reward(self.rate_since, pivot)
        self.rate_since = pivot
        self.rate_per_second = rate_per_second

    def generated_reward(self, from_time: int, to_time: int) -> int:
        """
        Compute reward generated between two timestamps.

        The interval is clamped to ``[start_time, end_time]``; reward is
        strictly linear in the clamped duration.

        Args:
            from_time: Interval start (seconds)
            to_time: Interval end (seconds)

        Returns:
            Reward generated in base units
        """
        if from_time >= to_time:
            return 0

        lower = max(from_time, self.start_time)
        upper = min(to_time, self.end_time)
        if upper <= lower:
            return 0
        return (upper - lower) * self.rate_per_second

    def is_active(self, now: int) -> bool:
        """True while ``now`` falls inside the emission window."""
        return self.start_time <= now < self.end_time
