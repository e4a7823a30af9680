"""RUSLE soil loss model.

Annual soil loss is estimated per pixel as the product of five factors,

    A = R * K * LS * C * P

where R is rainfall erosivity from monthly precipitation (through the
Modified Fournier Index), K is soil erodibility from topsoil texture and
organic carbon, LS is the topographic factor from slope, C is the cover
management factor from land cover and P is the support practice factor from
slope and land cover. Soil loss is then classified into severity classes and
summarized per administrative region.

The model is built on lazily evaluated raster handles (``natcap.rusle.raster``)
and realized tile by tile by a ``TileExecutor``, so the study area may be far
larger than what fits in memory.
"""
import dataclasses
import logging

from . import classification
from . import export
from . import factors
from . import providers
from . import raster
from . import regions
from . import reporting
from . import spec
from . import validation
from . import zonal
from .executor import RetryPolicy
from .executor import TileExecutor
from .unit_registry import u

LOGGER = logging.getLogger(__name__)

PRECIPITATION = 'precipitation'
ELEVATION = 'elevation'
LAND_COVER = 'land_cover'
SOIL_TEXTURE = ('sand', 'silt', 'clay', 'organic_carbon')
REQUIRED_DATASETS = (PRECIPITATION, ELEVATION, LAND_COVER) + SOIL_TEXTURE
ZONAL_STATISTICS = ('mean', 'median', 'stddev', 'min', 'max')

MODEL_SPEC = spec.ModelSpec(
    model_id="soil_loss",
    model_title="RUSLE Soil Loss",
    aliases={"rusle"},
    module_name=__name__,
    input_field_order=[
        ["workspace_dir", "results_suffix"],
        ["dataset_table_path", "boundaries_vector_path"],
        ["admin_level", "parent_region_name", "region_name",
         "simplify_tolerance"],
        ["start_year", "end_year"],
        ["biophysical_table_path", "default_c_factor"],
        ["compute_scale", "export_scale", "skip_factor_export"],
        ["pixel_ceiling", "tile_budget", "time_budget", "max_attempts",
         "backoff_factor"]
    ],
    inputs=[
        spec.WORKSPACE,
        spec.SUFFIX,
        spec.N_WORKERS,
        spec.CSVInput(
            id="dataset_table_path",
            name="dataset table",
            about=(
                "A table listing the rasters the model reads. Each row is one"
                " band of one raster file, or one month of the precipitation"
                " series. The table must list the datasets 'precipitation'"
                " (monthly, mm), 'elevation' (m), 'land_cover' (ESA"
                " WorldCover codes), 'sand', 'silt', 'clay' (g/kg) and"
                " 'organic_carbon' (dg/kg)."
            ),
            columns=[
                spec.StringInput(
                    id="dataset_id",
                    about="Name of the dataset this row belongs to."),
                spec.StringInput(
                    id="band",
                    about="Name of the band within the dataset."),
                spec.FileInput(
                    id="path",
                    about=(
                        "Path to a north-up raster with square pixels."
                        " Relative paths are relative to the table.")),
                spec.StringInput(
                    id="date",
                    about=(
                        "Date of the layer (YYYY-MM-DD), for the monthly"
                        " precipitation series."),
                    required=False),
                spec.IntegerInput(
                    id="band_index",
                    about="Raster band to read. Defaults to 1.",
                    required=False)
            ]
        ),
        spec.VectorInput(
            id="boundaries_vector_path",
            name="administrative boundaries",
            about=(
                "Polygons of the administrative regions to summarize, in the"
                " same projection as the rasters of the dataset table."
            ),
            geometry_types={"POLYGON", "MULTIPOLYGON"},
            fields=[
                spec.StringInput(
                    id="adm1_name",
                    about="Name of the first-level region (e.g. state)."),
                spec.StringInput(
                    id="adm2_name",
                    about="Name of the second-level region (e.g. district).",
                    required=False)
            ],
            projected=True,
            projection_units=u.meter
        ),
        spec.IntegerInput(
            id="admin_level",
            name="administrative level",
            about=(
                "Administrative level of the regions to summarize: 1 for the"
                " ADM1_NAME field, 2 for the ADM2_NAME field."
            ),
            expression="(value == 1) | (value == 2)"
        ),
        spec.StringInput(
            id="parent_region_name",
            name="parent region name",
            about=(
                "If provided, only regions within the first-level region of"
                " this name are summarized. Only used with level 2."
            ),
            required=False
        ),
        spec.StringInput(
            id="region_name",
            name="region name",
            about="If provided, only the region of this name is summarized.",
            required=False
        ),
        spec.NumberInput(
            id="simplify_tolerance",
            name="simplification tolerance",
            about=(
                "Region boundaries are simplified by this distance before"
                " pixels are assigned to them. 0 disables simplification."
            ),
            units=u.meter,
            expression="value >= 0",
            required=False
        ),
        spec.IntegerInput(
            id="start_year",
            name="start year",
            about="First year of the precipitation averaging window.",
        ),
        spec.IntegerInput(
            id="end_year",
            name="end year",
            about="Last year (inclusive) of the precipitation averaging window.",
        ),
        spec.CSVInput(
            id="biophysical_table_path",
            name="biophysical table",
            about=(
                "A table of cover-management and support practice factors by"
                " land cover code. Codes listed here replace the built-in ESA"
                " WorldCover C values; a usle_p value overrides the"
                " slope-based P factor for that land cover."
            ),
            columns=[
                spec.IntegerInput(
                    id="lucode",
                    about="Land cover code."),
                spec.RatioInput(
                    id="usle_c",
                    about="Cover-management factor for the USLE",
                    required=False),
                spec.RatioInput(
                    id="usle_p",
                    about="Support practice factor for the USLE",
                    required=False)
            ],
            index_col="lucode",
            required=False
        ),
        spec.RatioInput(
            id="default_c_factor",
            name="default C factor",
            about=(
                "C factor of land cover codes that have no C value. Defaults"
                " to 0.35."
            ),
            required=False
        ),
        spec.NumberInput(
            id="compute_scale",
            name="statistics pixel size",
            about="Pixel size at which regional statistics are computed.",
            units=u.meter,
            expression="value > 0"
        ),
        spec.NumberInput(
            id="export_scale",
            name="export pixel size",
            about="Pixel size of the exported rasters.",
            units=u.meter,
            expression="value > 0"
        ),
        spec.BooleanInput(
            id="skip_factor_export",
            name="skip factor export",
            about=(
                "If checked, the five RUSLE factors are not written to a"
                " raster stack. Soil loss and its classes are always written."
            ),
            required=False
        ),
        spec.IntegerInput(
            id="pixel_ceiling",
            name="pixel ceiling",
            about=(
                "Largest number of pixels a single request may cover before it"
                " is retried at a coarser pixel size. Defaults to 1e10."
            ),
            expression="value > 0",
            required=False
        ),
        spec.IntegerInput(
            id="tile_budget",
            name="tile budget",
            about=(
                "Largest number of cells (pixels times time steps) evaluated"
                " at once. Defaults to 1048576."
            ),
            expression="value > 0",
            required=False
        ),
        spec.NumberInput(
            id="time_budget",
            name="time budget",
            about=(
                "Seconds one request may run before it is retried at a"
                " coarser pixel size. No limit if not provided."
            ),
            units=u.second,
            expression="value > 0",
            required=False
        ),
        spec.IntegerInput(
            id="max_attempts",
            name="maximum attempts",
            about=(
                "Number of attempts for a request over budget, including the"
                " first. Defaults to 3."
            ),
            expression="value >= 1",
            required=False
        ),
        spec.NumberInput(
            id="backoff_factor",
            name="backoff factor",
            about=(
                "The pixel size is multiplied by this on every retry."
                " Defaults to 2."
            ),
            units=u.none,
            expression="value > 1",
            required=False
        ),
    ],
    outputs=[
        spec.SingleBandRasterOutput(
            id="soil_loss",
            path="soil_loss.tif",
            about="Annual soil loss per pixel.",
            data_type=float,
            units=u.metric_ton / (u.hectare * u.year)
        ),
        spec.SingleBandRasterOutput(
            id="erosion_class",
            path="erosion_class.tif",
            about=(
                "Soil loss severity class of each pixel, 1 (very low) to 6"
                " (very severe). 255 where soil loss is undefined."
            ),
            data_type=int,
            units=None
        ),
        spec.RasterOutput(
            id="rusle_factors",
            path="rusle_factors.tif",
            about="The five factors, one band each.",
            created_if="not skip_factor_export",
            bands=[
                spec.RasterBand(
                    band_id="r_factor",
                    units=u.megajoule * u.millimeter / (
                        u.hectare * u.hour * u.year)),
                spec.RasterBand(
                    band_id="k_factor",
                    units=u.metric_ton * u.hectare * u.hour / (
                        u.hectare * u.megajoule * u.millimeter)),
                spec.RasterBand(band_id="ls_factor", units=u.none),
                spec.RasterBand(band_id="c_factor", units=u.none),
                spec.RasterBand(band_id="p_factor", units=u.none),
            ]
        ),
        spec.CSVOutput(
            id="region_statistics",
            path="region_statistics.csv",
            about=(
                "Soil loss statistics, area of each severity class in"
                " hectares and the recommended action, per region."
            ),
            index_col="region"
        ),
        spec.CSVOutput(
            id="region_comparison",
            path="region_comparison.csv",
            about="Mean soil loss, R factor / 10 and slope per region.",
            index_col="region"
        ),
        spec.CSVOutput(
            id="soil_loss_histogram",
            path="soil_loss_histogram.csv",
            about=(
                "Pixel counts of soil loss in 40 buckets from 0 to 150"
                " t/ha/yr over the whole study area."
            )
        ),
        spec.CSVOutput(
            id="severity_legend",
            path="severity_legend.csv",
            about="The severity classes with their ranges and actions."
        ),
        spec.TASKGRAPH_CACHE
    ]
)


@dataclasses.dataclass(frozen=True)
class RunConfig:
    """Scales, averaging window and execution budget of a model run.

    Attributes:
        compute_scale (float): pixel size of regional statistics.
        export_scale (float): pixel size of exported rasters.
        start_year, end_year (int): inclusive precipitation window.
        pixel_ceiling (int): largest request before degrading.
        tile_budget (int): largest number of cells evaluated at once.
        n_workers (int): tile evaluation threads, ``-1`` for none.
        time_budget (float): seconds per request, or ``None``.
        max_attempts (int): attempts per request, including the first.
        backoff_factor (float): pixel size multiplier per retry.
        simplify_tolerance (float): region simplification distance.
        seasonal_months (tuple): calendar months of the monsoon season.
    """
    compute_scale: float = 500.0
    export_scale: float = 250.0
    start_year: int = 2020
    end_year: int = 2023
    pixel_ceiling: int = int(1e10)
    tile_budget: int = 2**20
    n_workers: int = -1
    time_budget: float = None
    max_attempts: int = 3
    backoff_factor: float = 2.0
    simplify_tolerance: float = 0.0
    seasonal_months: tuple = factors.MONSOON_MONTHS

    def __post_init__(self):
        if self.compute_scale <= 0 or self.export_scale <= 0:
            raise ValueError(
                f'Scales must be positive: compute {self.compute_scale}, '
                f'export {self.export_scale}')
        if self.start_year > self.end_year:
            raise ValueError(
                f'Start year {self.start_year} is after end year '
                f'{self.end_year}')

    @classmethod
    def from_args(cls, args):
        """Build a config from preprocessed model args.

        Args that were not provided keep their defaults.
        """
        names = [field.name for field in dataclasses.fields(cls)]
        return cls(**{
            name: args[name] for name in names
            if args.get(name) is not None})

    @property
    def time_range(self):
        return raster.TimeRange.from_years(self.start_year, self.end_year)

    def executor(self):
        """A new ``TileExecutor`` with this config's budget."""
        return TileExecutor(
            pixel_ceiling=self.pixel_ceiling,
            tile_budget=self.tile_budget,
            n_workers=self.n_workers,
            retry_policy=RetryPolicy(self.max_attempts, self.backoff_factor),
            time_budget=self.time_budget)


def build_factors(provider, study_region, config, cover_table=None,
                  practice_table=None, erosivity_parameters=None,
                  erodibility_parameters=None, topography_parameters=None):
    """Build the handles of every factor, soil loss and its classes.

    Nothing is evaluated here.

    Args:
        provider (DataProvider): serves the ``REQUIRED_DATASETS``.
        study_region (Region): every input is clipped to this region.
        config (RunConfig): supplies the time range and seasonal months.
        cover_table (CoverTable): C factor lookup.
        practice_table (PracticeTable): P factor bands and overrides.
        erosivity_parameters, erodibility_parameters,
            topography_parameters: factor coefficients, defaults if None.

    Returns:
        dict of ``RasterHandle`` with keys ``annual_rainfall``,
        ``seasonal_rainfall``, ``r_factor``, ``k_factor``, ``slope``,
        ``ls_factor``, ``c_factor``, ``p_factor``, ``soil_loss`` and
        ``erosion_class``.

    Raises:
        DataUnavailable if a dataset has no coverage over the study region
            or the time range.
        IncompatibleOperands if the datasets can't be combined.
    """
    time_range = config.time_range
    precipitation = raster.load(
        provider, PRECIPITATION, time_range=time_range, region=study_region,
        resample='bilinear')
    elevation = raster.load(
        provider, ELEVATION, region=study_region, resample='bilinear')
    land_cover = raster.load(provider, LAND_COVER, region=study_region)
    sand, silt, clay, organic_carbon = [
        raster.load(provider, dataset_id, region=study_region,
                    resample='bilinear')
        for dataset_id in SOIL_TEXTURE]

    slope = raster.slope(elevation)
    handles = {
        'annual_rainfall': factors.annual_rainfall(precipitation, time_range),
        'seasonal_rainfall': factors.seasonal_rainfall(
            precipitation, time_range, config.seasonal_months),
        'r_factor': factors.rainfall_erosivity(
            precipitation, time_range, erosivity_parameters),
        'k_factor': factors.soil_erodibility(
            sand, silt, clay, organic_carbon, erodibility_parameters),
        'slope': slope,
        'ls_factor': factors.topographic_factor(slope, topography_parameters),
        'c_factor': factors.cover_factor(land_cover, cover_table),
        'p_factor': factors.practice_factor(slope, land_cover, practice_table),
    }
    handles['soil_loss'] = classification.soil_loss(
        handles['r_factor'], handles['k_factor'], handles['ls_factor'],
        handles['c_factor'], handles['p_factor'])
    handles['erosion_class'] = classification.classify(handles['soil_loss'])
    return handles


def summarize_regions(handles, region_list, executor, scale,
                      scheme=classification.SEVERITY_SCHEME):
    """Soil loss statistics and class areas of every region.

    Returns:
        list of ``ZonalResult`` or ``NoCoverage``, in region order.
    """
    results = []
    for region in region_list:
        result = zonal.reduce(
            handles['soil_loss'], region, ZONAL_STATISTICS, executor,
            scale=scale, class_handle=handles['erosion_class'],
            scheme=scheme)
        reporting.log_region_summary(result, scheme)
        results.append(result)
    return results


def compare_regions(handles, region_list, executor, scale):
    """Mean soil loss, R factor and slope of every region.

    Returns:
        dict of region name to a dict of mean results keyed by
        ``soil_loss``, ``r_factor`` and ``slope``, as consumed by
        ``reporting.comparison_table``.
    """
    comparisons = {}
    for region in region_list:
        comparisons[region.name] = {
            key: zonal.reduce(
                handles[key], region, ('mean',), executor, scale=scale)
            for key in ('soil_loss', 'r_factor', 'slope')}
    return comparisons


def _load_tables(biophysical_table_path, default_c_factor):
    """Cover and practice tables from the optional biophysical table."""
    if default_c_factor is None:
        default_c_factor = 0.35
    if not biophysical_table_path:
        return factors.CoverTable(default=default_c_factor), None

    biophysical_df = MODEL_SPEC.get_input(
        'biophysical_table_path').get_validated_dataframe(
        biophysical_table_path)
    if 'usle_c' in biophysical_df.columns:
        cover_table = factors.CoverTable.from_dataframe(
            biophysical_df, default=default_c_factor)
    else:
        cover_table = factors.CoverTable(default=default_c_factor)
    practice_table = factors.PracticeTable.from_dataframe(biophysical_df)
    return cover_table, practice_table


def _load_model(model_inputs, config):
    """Build the regions, study region and handles of a run.

    ``model_inputs`` holds only paths and names so tasks can be scheduled
    with it.
    """
    boundary_provider = providers.VectorBoundaryProvider(
        model_inputs['boundaries_vector_path'],
        simplify_tolerance=config.simplify_tolerance)
    region_list = boundary_provider.regions(
        model_inputs['admin_level'],
        filter_name=model_inputs['region_name'],
        parent_name=model_inputs['parent_region_name'])
    if not region_list:
        raise ValueError(
            f'No level {model_inputs["admin_level"]} regions in '
            f'{model_inputs["boundaries_vector_path"]} match region name '
            f'"{model_inputs["region_name"]}" and parent region name '
            f'"{model_inputs["parent_region_name"]}"')
    if len(region_list) == 1:
        study_region = region_list[0]
    else:
        study_region = regions.union(region_list, 'study_area')

    cover_table, practice_table = _load_tables(
        model_inputs['biophysical_table_path'],
        model_inputs['default_c_factor'])
    data_provider = providers.GDALDataProvider.from_table(
        model_inputs['dataset_table_path'])
    handles = build_factors(
        data_provider, study_region, config, cover_table=cover_table,
        practice_table=practice_table)
    return region_list, study_region, handles


def _export_grid(handle, study_region, scale):
    bounds = raster.intersect_bounds(handle.extent, study_region.bounds)
    return raster.Grid.from_bounds(study_region.crs, bounds, scale)


def _write_rasters(model_inputs, config, soil_loss_path, erosion_class_path,
                   factors_path):
    """Export soil loss, its classes and the factor stack if requested."""
    _, study_region, handles = _load_model(model_inputs, config)
    executor = config.executor()
    grid = _export_grid(handles['soil_loss'], study_region, config.export_scale)

    for key, target_path in (
            ('soil_loss', soil_loss_path),
            ('erosion_class', erosion_class_path)):
        result = export.write_raster(handles[key], grid, executor, target_path)
        if result.degraded:
            LOGGER.warning(
                f'{target_path} was written at {result.effective_scale}, '
                f'coarser than the requested {config.export_scale}')

    if factors_path is None:
        return
    factor_stack = raster.stack(
        handles['r_factor'], handles['k_factor'], handles['ls_factor'],
        handles['c_factor'], handles['p_factor'])
    result = export.write_raster(factor_stack, grid, executor, factors_path)
    if result.degraded:
        LOGGER.warning(
            f'{factors_path} was written at {result.effective_scale}, '
            f'coarser than the requested {config.export_scale}')


def _write_region_tables(model_inputs, config, statistics_path,
                         comparison_path, histogram_path):
    """Summarize every region and the whole study area to CSV."""
    region_list, study_region, handles = _load_model(model_inputs, config)
    executor = config.executor()

    results = summarize_regions(
        handles, region_list, executor, config.compute_scale)
    reporting.write_statistics_table(results, statistics_path)

    comparisons = compare_regions(
        handles, region_list, executor, config.compute_scale)
    reporting.comparison_table(comparisons).to_csv(
        comparison_path, index=False)

    value_histogram = zonal.histogram(
        handles['soil_loss'], study_region, executor,
        scale=config.compute_scale)
    reporting.histogram_table(value_histogram).to_csv(
        histogram_path, index=False)


def _write_legend(legend_path):
    reporting.legend_table().to_csv(legend_path, index=False)


def execute(args):
    """RUSLE Soil Loss.

    Computes annual soil loss from rainfall erosivity, soil erodibility,
    topography, cover management and support practice, classifies it by
    severity and summarizes it per administrative region.

    Args:
        args['workspace_dir'] (string): output directory for all files
        args['results_suffix'] (string): (optional) string to append to any
            output file names
        args['n_workers'] (int): (optional) number of taskgraph workers and
            tile evaluation threads. -1 evaluates everything synchronously.
        args['dataset_table_path'] (string): path to a CSV with columns
            ``dataset_id``, ``band``, ``path`` and optionally ``date`` and
            ``band_index`` listing the input rasters
        args['boundaries_vector_path'] (string): path to a polygon vector of
            administrative regions with ``ADM1_NAME``/``ADM2_NAME`` fields
        args['admin_level'] (int): 1 or 2, the level of the regions to
            summarize
        args['parent_region_name'] (string): (optional) only summarize
            regions within this first-level region
        args['region_name'] (string): (optional) only summarize this region
        args['simplify_tolerance'] (number): (optional) region
            simplification distance
        args['start_year'] (int): first year of the precipitation window
        args['end_year'] (int): last year of the precipitation window
        args['biophysical_table_path'] (string): (optional) CSV of ``usle_c``
            and ``usle_p`` by ``lucode``
        args['default_c_factor'] (number): (optional) C of unlisted codes
        args['compute_scale'] (number): pixel size of regional statistics
        args['export_scale'] (number): pixel size of exported rasters
        args['skip_factor_export'] (bool): (optional) if True, the factor
            stack is not written
        args['pixel_ceiling'] (int): (optional) largest request in pixels
        args['tile_budget'] (int): (optional) largest number of cells per tile
        args['time_budget'] (number): (optional) seconds per request
        args['max_attempts'] (int): (optional) attempts per request
        args['backoff_factor'] (number): (optional) pixel size multiplier per
            retry

    Returns:
        File registry dictionary mapping MODEL_SPEC output ids to absolute paths
    """
    args, f_reg, task_graph = MODEL_SPEC.setup(args)
    config = RunConfig.from_args(args)
    LOGGER.info(f'Run configuration: {config}')

    model_inputs = {
        key: args[key] for key in (
            'dataset_table_path', 'boundaries_vector_path', 'admin_level',
            'parent_region_name', 'region_name', 'biophysical_table_path',
            'default_c_factor')}

    # build once up front so missing data and incompatible inputs fail
    # before any task is scheduled
    region_list, _, _ = _load_model(model_inputs, config)
    LOGGER.info(f'Summarizing {len(region_list)} regions')

    raster_paths = [f_reg['soil_loss'], f_reg['erosion_class']]
    factors_path = None
    if not args['skip_factor_export']:
        factors_path = f_reg['rusle_factors']
        raster_paths.append(factors_path)
    task_graph.add_task(
        func=_write_rasters,
        args=(model_inputs, config, f_reg['soil_loss'],
              f_reg['erosion_class'], factors_path),
        target_path_list=raster_paths,
        task_name='export rasters')

    task_graph.add_task(
        func=_write_region_tables,
        args=(model_inputs, config, f_reg['region_statistics'],
              f_reg['region_comparison'], f_reg['soil_loss_histogram']),
        target_path_list=[
            f_reg['region_statistics'], f_reg['region_comparison'],
            f_reg['soil_loss_histogram']],
        task_name='summarize regions')

    task_graph.add_task(
        func=_write_legend,
        args=(f_reg['severity_legend'],),
        target_path_list=[f_reg['severity_legend']],
        task_name='write severity legend')

    task_graph.close()
    task_graph.join()
    return f_reg.registry


def _dataset_table_paths(dataset_table_path):
    table = MODEL_SPEC.get_input(
        'dataset_table_path').get_validated_dataframe(dataset_table_path)
    return table['path'].tolist(), set(table['dataset_id'].tolist())


@validation.args_validator
def validate(args, limit_to=None):
    """Validate args to ensure they conform to `execute`'s contract.

    Args:
        args (dict): dictionary of key(str)/value pairs where keys and
            values are specified in `execute` docstring.
        limit_to (str): (optional) if not None indicates that validation
            should only occur on the args[limit_to] value.

    Returns:
        list of ([invalid key_a, invalid_keyb, ...], 'warning/error message')
            tuples. This is an empty list if validation succeeds.
    """
    validation_warnings = validation.validate(args, MODEL_SPEC)
    invalid_keys = validation.get_invalid_keys(validation_warnings)

    if ('start_year' not in invalid_keys and 'end_year' not in invalid_keys
            and args.get('start_year') not in (None, '')
            and args.get('end_year') not in (None, '')):
        if int(float(args['start_year'])) > int(float(args['end_year'])):
            validation_warnings.append(
                (['end_year', 'start_year'],
                 validation.get_message('YEARS_OUT_OF_ORDER')))

    if ('dataset_table_path' not in invalid_keys and
            'boundaries_vector_path' not in invalid_keys and
            args.get('dataset_table_path') and
            args.get('boundaries_vector_path')):
        raster_paths, dataset_ids = _dataset_table_paths(
            args['dataset_table_path'])
        missing = sorted(set(REQUIRED_DATASETS) - dataset_ids)
        if missing:
            validation_warnings.append(
                (['dataset_table_path'],
                 validation.get_message('MISSING_DATASETS').format(
                     datasets=missing)))
        else:
            overlap_warning = validation.check_spatial_overlap(
                sorted(set(raster_paths)) + [args['boundaries_vector_path']])
            if overlap_warning:
                validation_warnings.append(
                    (['dataset_table_path', 'boundaries_vector_path'],
                     overlap_warning))

    return sorted(validation_warnings, key=lambda w: w[0][0])
