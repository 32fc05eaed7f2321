"""
CAMS air quality, global 0.4° and European 0.1°, hourly.

Both domains store the same variables; the European one is finer but only
covers Europe, so the two are mixed (``cams_seamless``).  Nothing is
derived and no variable is accumulated.
"""
from __future__ import annotations

from enum import Enum

from services.derived import DerivedReader


class CamsVariable(str, Enum):
    pm10 = "pm10"
    pm2_5 = "pm2_5"
    dust = "dust"
    aerosol_optical_depth = "aerosol_optical_depth"
    carbon_monoxide = "carbon_monoxide"
    carbon_dioxide = "carbon_dioxide"
    nitrogen_dioxide = "nitrogen_dioxide"
    nitrogen_monoxide = "nitrogen_monoxide"
    ammonia = "ammonia"
    ozone = "ozone"
    sulphur_dioxide = "sulphur_dioxide"
    methane = "methane"
    uv_index = "uv_index"
    uv_index_clear_sky = "uv_index_clear_sky"
    alder_pollen = "alder_pollen"
    birch_pollen = "birch_pollen"
    grass_pollen = "grass_pollen"
    mugwort_pollen = "mugwort_pollen"
    olive_pollen = "olive_pollen"
    ragweed_pollen = "ragweed_pollen"
    formaldehyde = "formaldehyde"
    glyoxal = "glyoxal"
    non_methane_volatile_organic_compounds = "non_methane_volatile_organic_compounds"
    pm10_wildfires = "pm10_wildfires"
    peroxyacyl_nitrates = "peroxyacyl_nitrates"
    secondary_inorganic_aerosol = "secondary_inorganic_aerosol"
    residential_elementary_carbon = "residential_elementary_carbon"
    total_elementary_carbon = "total_elementary_carbon"
    pm2_5_total_organic_matter = "pm2_5_total_organic_matter"
    sea_salt_aerosol = "sea_salt_aerosol"

    @property
    def is_elevation_correctable(self) -> bool:
        return False

    @property
    def requires_offset_correction_for_mixing(self) -> bool:
        return False


class CamsReader(DerivedReader):
    """Stored variables only; every request resolves to ``Raw``."""

    rules = None
    raw = CamsVariable
    derived = None
