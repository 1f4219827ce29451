"""Grid-bucketed spatial index over the last reported driver positions.

Positions live in square cells of ``cell_deg`` degrees. A radius query only
visits the cells overlapping the query's bounding box, then filters the
candidates by exact haversine distance.
"""

import math
import uuid
from collections import defaultdict
from threading import Lock

from dispatch_api.services.pricing import haversine_km

_KM_PER_DEGREE_LAT = 111.195
_MIN_COS_LAT = 0.01

Cell = tuple[int, int]


def degree_spans(lat: float, radius_km: float) -> tuple[float, float]:
    """Half-widths in degrees (lat, lng) of a box enclosing the radius around ``lat``."""
    lat_span = radius_km / _KM_PER_DEGREE_LAT
    cos_lat = max(_MIN_COS_LAT, math.cos(math.radians(min(89.9, abs(lat) + lat_span))))
    return lat_span, min(180.0, radius_km / (_KM_PER_DEGREE_LAT * cos_lat))


class DriverGeoIndex:
    def __init__(self, cell_deg: float = 0.1) -> None:
        if cell_deg <= 0:
            raise ValueError("cell_deg must be > 0")
        self.cell_deg = cell_deg
        self._lng_cells = max(1, math.ceil(360 / cell_deg))
        self._lock = Lock()
        self._cells: dict[Cell, set[uuid.UUID]] = defaultdict(set)
        self._positions: dict[uuid.UUID, tuple[float, float]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._positions)

    def __contains__(self, driver_id: object) -> bool:
        with self._lock:
            return driver_id in self._positions

    def _cell_for(self, lat: float, lng: float) -> Cell:
        lat_cell = math.floor(lat / self.cell_deg)
        lng_cell = math.floor((lng + 180) / self.cell_deg) % self._lng_cells
        return lat_cell, lng_cell

    def upsert(self, driver_id: uuid.UUID, lat: float, lng: float) -> None:
        if not -90 <= lat <= 90 or not -180 <= lng <= 180:
            raise ValueError("coordinates out of range")

        cell = self._cell_for(lat, lng)
        with self._lock:
            previous = self._positions.get(driver_id)
            if previous is not None:
                self._discard_locked(driver_id, self._cell_for(*previous))
            self._positions[driver_id] = (lat, lng)
            self._cells[cell].add(driver_id)

    def remove(self, driver_id: uuid.UUID) -> None:
        with self._lock:
            previous = self._positions.pop(driver_id, None)
            if previous is not None:
                self._discard_locked(driver_id, self._cell_for(*previous))

    def position(self, driver_id: uuid.UUID) -> tuple[float, float] | None:
        with self._lock:
            return self._positions.get(driver_id)

    def clear(self) -> None:
        with self._lock:
            self._cells.clear()
            self._positions.clear()

    def within(self, lat: float, lng: float, radius_km: float) -> list[tuple[uuid.UUID, float]]:
        """Drivers within ``radius_km`` of the point, nearest first."""
        if radius_km < 0:
            raise ValueError("radius_km must be >= 0")

        with self._lock:
            candidates = [
                (driver_id, self._positions[driver_id])
                for cell in self._cells_for_radius(lat, lng, radius_km)
                for driver_id in self._cells.get(cell, ())
            ]

        hits: list[tuple[uuid.UUID, float]] = []
        for driver_id, (driver_lat, driver_lng) in candidates:
            distance = haversine_km(lat, lng, driver_lat, driver_lng)
            if distance <= radius_km:
                hits.append((driver_id, distance))
        hits.sort(key=lambda hit: (hit[1], str(hit[0])))
        return hits

    def _cells_for_radius(self, lat: float, lng: float, radius_km: float) -> set[Cell]:
        lat_span, lng_span = degree_spans(lat, radius_km)

        min_lat_cell = math.floor(max(-90.0, lat - lat_span) / self.cell_deg)
        max_lat_cell = math.floor(min(90.0, lat + lat_span) / self.cell_deg)
        first_lng_cell = math.floor((lng - lng_span + 180) / self.cell_deg)
        last_lng_cell = min(
            math.floor((lng + lng_span + 180) / self.cell_deg),
            first_lng_cell + self._lng_cells,
        )
        lng_cells = {cell % self._lng_cells for cell in range(first_lng_cell, last_lng_cell + 1)}
        return {
            (lat_cell, lng_cell)
            for lat_cell in range(min_lat_cell, max_lat_cell + 1)
            for lng_cell in lng_cells
        }

    def _discard_locked(self, driver_id: uuid.UUID, cell: Cell) -> None:
        bucket = self._cells.get(cell)
        if bucket is None:
            return
        bucket.discard(driver_id)
        if not bucket:
            del self._cells[cell]
