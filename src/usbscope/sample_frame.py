"""Decoded sample frame for usbscope."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SampleFrame:
    """One decoded acquisition buffer.

    ``channel`` is the channel id reported in the first byte of the raw
    frame; it is informational only.
    """

    channel: int
    voltages: list[float]

    @property
    def min_v(self) -> float:
        return min(self.voltages, default=0.0)

    @property
    def max_v(self) -> float:
        return max(self.voltages, default=0.0)

    @property
    def mean_v(self) -> float:
        if not self.voltages:
            return 0.0
        return sum(self.voltages) / len(self.voltages)
