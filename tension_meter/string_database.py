"""
Reference table of measured string linear densities.

Measured values capture shaped profiles, coatings and internal structure that
the solid-cylinder model misses (typically a 5-10% difference). The table is
immutable; load it once and pass it to the physics model.

Sources: manufacturer specs, stringforum.net measurements, TWU data.
"""

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, NamedTuple

import numpy as np

logger = logging.getLogger(__name__)

# Gauges closer than this (mm) count as the same gauge
GAUGE_MATCH_TOLERANCE = 0.005


class GaugeDensity(NamedTuple):
    """Measured linear density for one gauge."""
    mm: float
    linear_density_g_m: float


@dataclass(frozen=True)
class StringModel:
    """A commercial string and its measured gauges."""
    brand: str
    name: str
    material: str
    gauges: tuple[GaugeDensity, ...]

    @property
    def key(self) -> str:
        """Identifier in "Brand|Name" form."""
        return f"{self.brand}|{self.name}"

    def linear_density(self, gauge_mm: float) -> float:
        """
        Linear density in kg/m for the given gauge.

        Exact gauges use the measured value, gauges between two measurements
        are interpolated and gauges outside the measured range are clamped to
        the nearest end.
        """
        for g in self.gauges:
            if abs(g.mm - gauge_mm) < GAUGE_MATCH_TOLERANCE:
                return g.linear_density_g_m / 1000

        ordered = sorted(self.gauges)
        mm = np.array([g.mm for g in ordered])
        density = np.array([g.linear_density_g_m for g in ordered])
        return float(np.interp(gauge_mm, mm, density)) / 1000


def _model(brand: str, name: str, material: str, *gauges: tuple[float, float]) -> StringModel:
    return StringModel(brand, name, material, tuple(GaugeDensity(*g) for g in gauges))


DEFAULT_STRINGS: tuple[StringModel, ...] = (
    # Polyester
    _model("Luxilon", "ALU Power", "Polyester", (1.25, 1.53), (1.30, 1.66)),
    _model("Luxilon", "ALU Power Rough", "Polyester", (1.25, 1.54)),
    _model("Luxilon", "4G", "Polyester", (1.25, 1.51), (1.30, 1.65)),
    _model("Luxilon", "4G Rough", "Polyester", (1.25, 1.52)),
    _model("Luxilon", "Element", "Polyester", (1.25, 1.46), (1.30, 1.58)),
    _model("Babolat", "RPM Blast", "Polyester", (1.20, 1.36), (1.25, 1.48), (1.30, 1.63), (1.35, 1.74)),
    _model("Babolat", "RPM Blast Rough", "Polyester", (1.25, 1.50), (1.30, 1.64)),
    _model("Babolat", "RPM Hurricane", "Polyester", (1.25, 1.52), (1.30, 1.67)),
    _model("Solinco", "Hyper-G", "Polyester", (1.15, 1.22), (1.20, 1.30), (1.25, 1.52), (1.30, 1.61)),
    _model("Solinco", "Hyper-G Soft", "Polyester", (1.20, 1.28), (1.25, 1.49)),
    _model("Solinco", "Tour Bite", "Polyester", (1.20, 1.33), (1.25, 1.50), (1.30, 1.63)),
    _model("Solinco", "Confidential", "Polyester", (1.20, 1.31), (1.25, 1.48)),
    _model("Head", "Lynx", "Polyester", (1.25, 1.48), (1.30, 1.62)),
    _model("Head", "Lynx Tour", "Polyester", (1.25, 1.49), (1.30, 1.63)),
    _model("Head", "Hawk", "Polyester", (1.25, 1.50), (1.30, 1.64)),
    _model("Yonex", "Poly Tour Pro", "Polyester", (1.20, 1.35), (1.25, 1.50), (1.30, 1.64)),
    _model("Yonex", "Poly Tour Strike", "Polyester", (1.25, 1.49), (1.30, 1.63)),
    _model("Yonex", "Poly Tour Rev", "Polyester", (1.20, 1.34), (1.25, 1.48)),
    _model("Tecnifibre", "Razor Code", "Polyester", (1.25, 1.47), (1.30, 1.61)),
    _model("Tecnifibre", "Black Code", "Polyester", (1.24, 1.46), (1.28, 1.56)),
    _model("Volkl", "Cyclone", "Polyester", (1.25, 1.48), (1.30, 1.62)),
    _model("Wilson", "Revolve", "Polyester", (1.25, 1.48), (1.30, 1.63)),
    _model("Wilson", "Luxilon Ace", "Polyester", (1.12, 1.20)),
    # Multifilament
    _model("Wilson", "NXT", "Multifilament", (1.24, 1.30), (1.30, 1.36)),
    _model("Tecnifibre", "X-One Biphase", "Multifilament", (1.24, 1.30), (1.30, 1.34)),
    _model("Tecnifibre", "NRG2", "Multifilament", (1.24, 1.28), (1.32, 1.37)),
    _model("Head", "Velocity MLT", "Multifilament", (1.25, 1.27), (1.30, 1.35)),
    # Natural gut
    _model("Babolat", "VS Touch", "NaturalGut", (1.25, 1.35), (1.30, 1.42)),
    _model("Wilson", "Natural Gut", "NaturalGut", (1.25, 1.33), (1.30, 1.40)),
    _model("Luxilon", "Natural Gut", "NaturalGut", (1.25, 1.34), (1.30, 1.41)),
    # Nylon / synthetic gut
    _model("Prince", "Synthetic Gut", "Nylon", (1.25, 1.28), (1.30, 1.37)),
    _model("Wilson", "Synthetic Gut Power", "Nylon", (1.25, 1.27), (1.30, 1.36)),
    _model("Head", "Synthetic Gut PPS", "Nylon", (1.25, 1.29), (1.30, 1.38)),
    # Toroline (cylinder estimates, co-polyester 1380 kg/m^3)
    _model("Toroline", "O-TORO", "Polyester", (1.23, 1.64)),
    _model("Toroline", "O-TORO Tour", "Polyester", (1.20, 1.56), (1.23, 1.64)),
    _model("Toroline", "O-TORO Spin", "Polyester", (1.23, 1.64)),
    _model("Toroline", "O-TORO Snap", "Polyester", (1.23, 1.64)),
    _model("Toroline", "O-TORO Octa", "Polyester", (1.23, 1.64)),
    _model("Toroline", "Caviar", "Polyester", (1.16, 1.46), (1.20, 1.56), (1.24, 1.67)),
    _model("Toroline", "Ether", "Polyester", (1.20, 1.56)),
    _model("Toroline", "Wasabi", "Polyester", (1.23, 1.64)),
    _model("Toroline", "Zero", "Polyester", (1.23, 1.64), (1.28, 1.77)),
)


class StringDatabase:
    """Read-only collection of string models keyed by brand and name."""

    def __init__(self, models: tuple[StringModel, ...] | list[StringModel] = DEFAULT_STRINGS):
        self._models = tuple(models)
        self._by_key = {m.key: m for m in self._models}

    def find(self, brand: str, name: str) -> StringModel | None:
        return self._by_key.get(f"{brand}|{name}")

    def find_key(self, key: str) -> StringModel | None:
        """Find a model by its "Brand|Name" key."""
        return self._by_key.get(key)

    def lookup_linear_density(self, brand: str, name: str, gauge_mm: float) -> float | None:
        """
        Measured linear density in kg/m, or None if the string isn't listed.
        """
        model = self.find(brand, name)
        if model is None:
            return None
        return model.linear_density(gauge_mm)

    def brands(self) -> list[str]:
        """Unique brands in table order."""
        return list(dict.fromkeys(m.brand for m in self._models))

    def models_for_brand(self, brand: str) -> list[StringModel]:
        return [m for m in self._models if m.brand == brand]

    def __iter__(self) -> Iterator[StringModel]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)


DEFAULT_DATABASE = StringDatabase()


def load_string_database(path: str | Path) -> StringDatabase:
    """
    Load a string table from a CSV file.

    File format: comma-separated rows of brand, name, material, gauge in mm
    and linear density in g/m. One row per gauge; rows sharing brand and name
    form one model. Lines starting with # are comments, a header row and
    malformed rows are skipped.

    Example:
        # brand,name,material,gauge_mm,linear_density_g_m
        Luxilon,ALU Power,Polyester,1.25,1.53
        Luxilon,ALU Power,Polyester,1.30,1.66

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file contains no valid rows
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"String database file not found: {path}")

    materials: dict[tuple[str, str], str] = {}
    gauges: dict[tuple[str, str], list[GaugeDensity]] = {}

    with open(file_path, "r", encoding="utf-8", newline="") as f:
        for line_num, row in enumerate(csv.reader(f), start=1):
            if not row or row[0].strip().startswith("#"):
                continue
            if len(row) < 5:
                logger.debug("Skipping short row %d in %s", line_num, file_path)
                continue

            brand, name, material = (cell.strip() for cell in row[:3])
            try:
                mm = float(row[3])
                density = float(row[4])
            except ValueError:
                continue  # Header or invalid numbers
            if mm <= 0 or density <= 0:
                continue

            key = (brand, name)
            materials.setdefault(key, material)
            gauges.setdefault(key, []).append(GaugeDensity(mm, density))

    if not gauges:
        raise ValueError(f"No valid entries found in string database: {path}")

    models = [
        StringModel(brand, name, materials[(brand, name)], tuple(sorted(g)))
        for (brand, name), g in gauges.items()
    ]
    logger.info("Loaded %d string models from %s", len(models), file_path)
    return StringDatabase(models)
