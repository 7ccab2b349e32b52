"""Soft sun sampling for shadow baking.

The sun is approximated by five discrete directions around one base
heading/pitch: the center, ± heading spread and ± pitch spread. The set is
fixed-size; occlusion is averaged over all five to produce a soft edge.

Direction convention
--------------------
    d(h, p) = (cos h · cos p,  sin h · cos p,  sin p)

Heading is measured in the raster's xy plane from +x (columns) toward +y
(rows); pitch is the elevation above the horizon. A positive pitch gives the
strictly positive vertical component the raymarcher requires.
"""

from __future__ import annotations

import logging

import numpy as np

from core_engine.constants import SunConfig

logger = logging.getLogger(__name__)

NUM_SUN_SAMPLES = 5


def heading_pitch_direction(heading_rad: float, pitch_rad: float) -> np.ndarray:
    """Unit direction toward a sun at the given heading and pitch."""
    return np.array(
        [
            np.cos(heading_rad) * np.cos(pitch_rad),
            np.sin(heading_rad) * np.cos(pitch_rad),
            np.sin(pitch_rad),
        ],
        dtype=np.float64,
    )


class SunSampleSet:
    """Exactly five sun directions: center, ±heading, ±pitch.

    Parameters
    ----------
    heading_rad, pitch_rad : float
        Base sun direction [rad].
    heading_spread_rad, pitch_spread_rad : float
        Offsets of the side samples [rad].

    Raises
    ------
    ValueError
        If any sample would not point upward.
    """

    def __init__(
        self,
        heading_rad: float,
        pitch_rad: float,
        heading_spread_rad: float,
        pitch_spread_rad: float,
    ) -> None:
        directions = np.stack([
            heading_pitch_direction(heading_rad, pitch_rad),
            heading_pitch_direction(heading_rad + heading_spread_rad, pitch_rad),
            heading_pitch_direction(heading_rad - heading_spread_rad, pitch_rad),
            heading_pitch_direction(heading_rad, pitch_rad + pitch_spread_rad),
            heading_pitch_direction(heading_rad, pitch_rad - pitch_spread_rad),
        ])
        if np.any(directions[:, 2] <= 0.0):
            raise ValueError(
                "All sun samples must point above the horizon; "
                f"lowest pitch is {np.degrees(pitch_rad - abs(pitch_spread_rad)):.3f}°"
            )
        directions.setflags(write=False)
        self._directions = directions

    @classmethod
    def from_config(cls, sun: SunConfig) -> "SunSampleSet":
        samples = cls(
            np.radians(sun.heading_deg),
            np.radians(sun.pitch_deg),
            np.radians(sun.heading_spread_deg),
            np.radians(sun.pitch_spread_deg),
        )
        logger.debug(
            "Sun samples: heading=%.2f° pitch=%.2f° spread=(%.2f°, %.2f°)",
            sun.heading_deg,
            sun.pitch_deg,
            sun.heading_spread_deg,
            sun.pitch_spread_deg,
        )
        return samples

    @property
    def directions(self) -> np.ndarray:
        """Read-only (5, 3) float64 array of unit directions."""
        return self._directions

    def __len__(self) -> int:
        return NUM_SUN_SAMPLES

    def __iter__(self):
        return iter(self._directions)
