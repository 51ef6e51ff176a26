import logging
from dataclasses import dataclass

import numpy as np


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DegreesToKm:
    """
    Conversion of lon/lat degrees into a local x/y plane in km.

    The origin is the mean of all endpoint coordinates ("center of gravity"),
    the km-per-degree factors are evaluated at that latitude. Source of the
    approximation formula:
    https://gis.stackexchange.com/questions/75528/understanding-terms-in-length-of-degree-formula/75535#75535

    The same instance has to be used for every projection of one dataset,
    so distances stay comparable between raw and grouped coordinates.
    """
    km_per_lon_deg: float
    km_per_lat_deg: float
    mean_lon: float
    mean_lat: float

    @classmethod
    def from_coordinates(cls, lons, lats):
        lons = np.asarray(lons, dtype=float)
        lats = np.asarray(lats, dtype=float)
        if lons.size == 0:
            raise ValueError('Cannot compute a projection without any coordinates')

        mean_lon = float(lons.mean())
        mean_lat = float(lats.mean())

        radians = np.radians(mean_lat)
        km_per_lon_deg = (111132.954 * np.cos(1 * radians)
                          - 93.55 * np.cos(3 * radians)
                          + 0.118 * np.cos(5 * radians)) / 1000
        km_per_lat_deg = (111132.92
                          - 559.82 * np.cos(2 * radians)
                          + 1.175 * np.cos(4 * radians)
                          - 0.0023 * np.cos(6 * radians)) / 1000

        logger.info(f'   INFO: Majority of nodes are on the '
                    f'{"NORTH" if mean_lat > 0 else "SOUTH"} and '
                    f'{"EASTERN" if mean_lon > 0 else "WESTERN"} hemisphere')

        return cls(float(km_per_lon_deg), float(km_per_lat_deg), mean_lon, mean_lat)

    def to_xy(self, lon, lat):
        """
        Project lon/lat (scalars or arrays) to x/y in km from the midpoint.
        """
        x = (np.asarray(lon, dtype=float) - self.mean_lon) * self.km_per_lon_deg
        y = (np.asarray(lat, dtype=float) - self.mean_lat) * self.km_per_lat_deg
        return x, y
