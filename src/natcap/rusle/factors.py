"""The five RUSLE factors built as raster handle graphs.

Every function here composes handles and returns a new one; nothing is
evaluated. All empirical coefficients live in the frozen parameter
dataclasses so a calibration can be swapped in without touching the graph
code.
"""
import dataclasses
import logging

import pandas

from . import raster

LOGGER = logging.getLogger(__name__)

# June through September
MONSOON_MONTHS = (6, 7, 8, 9)

# ESA WorldCover classes
WORLDCOVER_C_FACTORS = {
    10: 0.001,  # tree cover
    20: 0.05,   # shrubland
    30: 0.01,   # grassland
    40: 0.20,   # cropland
    50: 0.0,    # built-up
    60: 0.45,   # bare / sparse vegetation
    70: 0.0,    # snow and ice
    80: 0.0,    # permanent water bodies
    90: 0.001,  # herbaceous wetland
    95: 0.0,    # mangroves
    100: 0.0,   # moss and lichen
}


@dataclasses.dataclass(frozen=True)
class ErosivityParameters:
    """``R = mfi_coefficient * MFI + rainfall_coefficient * P + intercept``."""
    mfi_coefficient: float = 0.5
    rainfall_coefficient: float = 0.363
    intercept: float = 79.0


@dataclasses.dataclass(frozen=True)
class ErodibilityParameters:
    """Coefficients of the texture and organic carbon K approximation.

    Source soil rasters are divided by ``source_divisor`` first (SoilGrids
    stores g/kg and dg/kg).
    """
    source_divisor: float = 10.0
    sand_base: float = 0.2
    sand_scale: float = 0.3
    sand_decay: float = -0.01
    silt_exponent: float = 0.3
    carbon_scale: float = 0.1
    carbon_exponent: float = -0.5
    k_scale: float = 0.1317


@dataclasses.dataclass(frozen=True)
class TopographyParameters:
    """Fixed slope length L and the two-branch steepness S (degrees)."""
    slope_length: float = 100.0
    unit_plot_length: float = 22.13
    length_exponent: float = 0.5
    steepness_threshold: float = 9.0
    gentle_coefficients: tuple = (10.8, 0.03)
    steep_coefficients: tuple = (16.8, -0.5)

    @property
    def length_factor(self):
        return (self.slope_length / self.unit_plot_length) ** \
            self.length_exponent


@dataclasses.dataclass(frozen=True)
class CoverTable:
    """Land-cover code to C coefficient with a default for unlisted codes."""
    mapping: dict = dataclasses.field(
        default_factory=lambda: dict(WORLDCOVER_C_FACTORS))
    default: float = 0.35

    def __post_init__(self):
        _check_unit_interval('default', self.default, 'C')
        for code, value in self.mapping.items():
            _check_unit_interval(code, value, 'C')

    @classmethod
    def from_dataframe(cls, table, column='usle_c', default=0.35):
        """Build from a table indexed by land-cover code.

        Raises:
            ValueError if a code is listed twice or a value is missing or
                outside 0..1.
        """
        _check_unique_codes(table)
        mapping = {}
        for lucode, value in table[column].items():
            if pandas.isna(value):
                raise ValueError(
                    f'Missing value in column "{column}", lucode row '
                    f'"{lucode}" of the biophysical table')
            mapping[int(lucode)] = float(value)
        return cls(mapping, default)


@dataclasses.dataclass(frozen=True)
class PracticeTable:
    """P by slope band, overridden to fixed values for some land covers.

    ``values[0]`` applies below ``edges[0]`` degrees, ``values[-1]`` from
    ``edges[-1]`` degrees up. Land-cover ``overrides`` replace the banded
    value.
    """
    edges: tuple = (2.0, 5.0, 8.0, 12.0, 16.0, 20.0)
    values: tuple = (0.6, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0)
    overrides: dict = dataclasses.field(
        default_factory=lambda: {50: 0.0, 80: 0.0})

    def __post_init__(self):
        if len(self.values) != len(self.edges) + 1:
            raise ValueError(
                f'{len(self.edges)} slope edges need {len(self.edges) + 1} '
                f'P values, got {len(self.values)}')
        for value in self.values:
            _check_unit_interval('slope band', value, 'P')
        for code, value in self.overrides.items():
            _check_unit_interval(code, value, 'P')

    @classmethod
    def from_dataframe(cls, table, column='usle_p', base=None):
        """Add overrides for every row of ``table`` with a ``column`` value."""
        base = base or cls()
        _check_unique_codes(table)
        overrides = dict(base.overrides)
        if column in table.columns:
            for lucode, value in table[column].dropna().items():
                overrides[int(lucode)] = float(value)
        return dataclasses.replace(base, overrides=overrides)


def _check_unique_codes(table):
    duplicates = table.index[table.index.duplicated()].unique().tolist()
    if duplicates:
        raise ValueError(
            f'Land-cover codes must be unique; found duplicates of '
            f'{duplicates} in the biophysical table')


def _check_unit_interval(code, value, factor):
    if not 0 <= value <= 1:
        raise ValueError(
            f'A {factor} value is not a number within range 0..1. The '
            f'offending value is for lucode "{code}" and has value '
            f'"{value}"')


def annual_rainfall(precipitation, time_range):
    """Mean annual precipitation over ``time_range``."""
    return raster.temporal_sum(
        precipitation, divisor=time_range.n_years).rename('annual_rainfall')


def seasonal_rainfall(precipitation, time_range, months=MONSOON_MONTHS):
    """Mean precipitation per year over the given calendar months."""
    return raster.temporal_sum(
        precipitation, months=months,
        divisor=time_range.n_years).rename('seasonal_rainfall')


def modified_fournier_index(precipitation, time_range):
    """MFI: sum over calendar months of ``monthly^2 / (annual + 1)``.

    Monthly and annual totals are means per year of ``time_range``.
    """
    annual = annual_rainfall(precipitation, time_range)
    mfi = None
    for month in range(1, 13):
        monthly = raster.temporal_sum(
            precipitation, months=[month], divisor=time_range.n_years)
        term = monthly ** 2 / (annual + 1)
        mfi = term if mfi is None else mfi + term
    return mfi.rename('mfi')


def rainfall_erosivity(precipitation, time_range, parameters=None):
    """R factor in MJ mm / (ha h yr) from a monthly precipitation series.

    Args:
        precipitation (RasterHandle): precipitation time series, mm.
        time_range (TimeRange): the averaging window.
        parameters (ErosivityParameters): regression coefficients.

    Returns:
        RasterHandle
    """
    parameters = parameters or ErosivityParameters()
    mfi = modified_fournier_index(precipitation, time_range)
    annual = annual_rainfall(precipitation, time_range)
    r_factor = (mfi * parameters.mfi_coefficient +
                annual * parameters.rainfall_coefficient +
                parameters.intercept)
    return r_factor.rename('r_factor')


def soil_erodibility(sand, silt, clay, organic_carbon, parameters=None):
    """K factor from topsoil texture fractions and organic carbon.

    Args:
        sand, silt, clay, organic_carbon (RasterHandle): soil rasters in
            source units, divided by ``parameters.source_divisor``.
        parameters (ErodibilityParameters): coefficients.

    Returns:
        RasterHandle
    """
    parameters = parameters or ErodibilityParameters()
    sand = sand / parameters.source_divisor
    silt = silt / parameters.source_divisor
    clay = clay / parameters.source_divisor
    organic_carbon = organic_carbon / parameters.source_divisor

    f_sand = ((sand * parameters.sand_decay).exp() * parameters.sand_scale +
              parameters.sand_base)
    f_clay_silt = (silt / (clay + silt + 1)) ** parameters.silt_exponent
    f_organic = ((organic_carbon * parameters.carbon_scale + 1) **
                 parameters.carbon_exponent)
    k_factor = f_sand * f_clay_silt * f_organic * parameters.k_scale
    return k_factor.rename('k_factor')


def topographic_factor(slope_degrees, parameters=None):
    """LS factor from slope in degrees.

    Where slope < threshold::

        S = gentle[0] * sin(slope) + gentle[1]

    otherwise::

        S = steep[0] * sin(slope) + steep[1]

    floored at 0, and 0 on perfectly flat pixels. ``LS = L * S`` with a
    fixed ``L = (slope_length / unit_plot_length) ** length_exponent``.
    """
    parameters = parameters or TopographyParameters()
    sin_slope = slope_degrees.radians().sin()
    gentle_a, gentle_b = parameters.gentle_coefficients
    steep_a, steep_b = parameters.steep_coefficients
    steepness = raster.where(
        slope_degrees.lt(parameters.steepness_threshold),
        sin_slope * gentle_a + gentle_b,
        sin_slope * steep_a + steep_b).max(0)
    steepness = raster.where(slope_degrees.eq(0), 0, steepness)
    return (steepness * parameters.length_factor).rename('ls_factor')


def cover_factor(land_cover, table=None):
    """C factor by land-cover lookup."""
    table = table or CoverTable()
    return raster.remap(land_cover, table.mapping, table.default).rename(
        'c_factor')


def practice_factor(slope_degrees, land_cover, table=None):
    """P factor by slope band with land-cover overrides."""
    table = table or PracticeTable()
    p_factor = raster.bands(slope_degrees, table.edges, table.values)
    for code, value in sorted(table.overrides.items()):
        p_factor = raster.where(land_cover.eq(code), value, p_factor)
    return p_factor.rename('p_factor')
