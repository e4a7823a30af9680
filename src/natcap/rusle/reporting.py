"""Tabular and logged summaries of zonal results."""
import logging
import math

import pandas

from .classification import SEVERITY_SCHEME

LOGGER = logging.getLogger(__name__)

STATISTIC_COLUMNS = ('mean', 'median', 'stddev', 'min', 'max')


def _class_column(severity_class):
    return f'area_ha_class_{severity_class.class_id}'


def recommendation(mean_soil_loss, scheme=SEVERITY_SCHEME):
    """Management action for a region with this mean soil loss."""
    if mean_soil_loss is None or math.isnan(mean_soil_loss):
        return ''
    return scheme.get(scheme.classify_value(mean_soil_loss)).action


def statistics_table(results, scheme=SEVERITY_SCHEME):
    """One row per region of soil loss statistics and class areas.

    Args:
        results (list): ``ZonalResult`` or ``NoCoverage`` objects.
        scheme (ClassificationScheme): names the class area columns.

    Returns:
        pandas.DataFrame with columns ``region``, ``status``,
        ``pixel_count``, the reducers, one ``area_ha_class_<id>`` column
        per class, ``degraded``, ``effective_scale`` and
        ``recommendation``.
    """
    rows = []
    for result in results:
        row = {'region': result.region}
        if not result:
            row['status'] = f'no coverage: {result.reason}'
            rows.append(row)
            continue
        row['status'] = 'degraded' if result.degraded else 'ok'
        row['pixel_count'] = result.pixel_count
        for statistic in STATISTIC_COLUMNS:
            row[statistic] = result.statistics.get(statistic, math.nan)
        for severity_class in scheme:
            row[_class_column(severity_class)] = result.class_areas.get(
                severity_class.class_id, math.nan)
        row['degraded'] = result.degraded
        row['effective_scale'] = result.effective_scale
        row['recommendation'] = recommendation(
            result.statistics.get('mean', math.nan), scheme)
        rows.append(row)

    columns = (
        ['region', 'status', 'pixel_count'] + list(STATISTIC_COLUMNS) +
        [_class_column(c) for c in scheme] +
        ['degraded', 'effective_scale', 'recommendation'])
    return pandas.DataFrame(rows, columns=columns)


def write_statistics_table(results, target_csv_path, scheme=SEVERITY_SCHEME):
    """Write ``statistics_table`` to a CSV file."""
    statistics_table(results, scheme).to_csv(target_csv_path, index=False)


def log_region_summary(result, scheme=SEVERITY_SCHEME):
    """Log the statistics and class areas of one region at INFO."""
    if not result:
        LOGGER.info(f'{result.region}: {result.reason}')
        return
    statistics = ', '.join(
        f'{name} {value:.3f}' for name, value in result.statistics.items()
        if name != 'count')
    LOGGER.info(f'{result.region} soil loss (t/ha/yr): {statistics}')
    for severity_class in scheme:
        area = result.class_areas.get(severity_class.class_id)
        if area is not None:
            LOGGER.info(
                f'{result.region} {severity_class.label}: {area:.1f} ha')
    if result.degraded:
        LOGGER.warning(
            f'{result.region} was summarized at scale '
            f'{result.effective_scale}, coarser than requested')


def _format_range(severity_class):
    if math.isinf(severity_class.high):
        return f'>{severity_class.low:g}'
    if severity_class.low == 0:
        return f'<{severity_class.high:g}'
    return f'{severity_class.low:g}-{severity_class.high:g}'


def legend_table(scheme=SEVERITY_SCHEME):
    """The severity classes with their ranges, meanings and actions."""
    return pandas.DataFrame(
        [{'class_id': c.class_id,
          'label': c.label,
          'range_t_ha_yr': _format_range(c),
          'description': c.description,
          'action': c.action} for c in scheme],
        columns=['class_id', 'label', 'range_t_ha_yr', 'description',
                 'action'])


def histogram_table(value_histogram):
    """One row per histogram bucket: ``bin_low``, ``bin_high``, ``count``."""
    if not value_histogram:
        return pandas.DataFrame(columns=['bin_low', 'bin_high', 'count'])
    edges = value_histogram.edges
    return pandas.DataFrame({
        'bin_low': edges[:-1],
        'bin_high': edges[1:],
        'count': value_histogram.counts,
    })


def comparison_table(comparisons):
    """Side by side region means of soil loss, R / 10 and slope.

    Args:
        comparisons (dict): region name to a dict of the mean ``ZonalResult``
            (or ``NoCoverage``) for ``soil_loss``, ``r_factor`` and
            ``slope``.

    Returns:
        pandas.DataFrame with columns ``region``, ``soil_loss``,
        ``r_factor_div_10`` and ``slope``.
    """
    def mean_of(result):
        if not result:
            return math.nan
        return result.statistics['mean']

    rows = []
    for region_name, results in comparisons.items():
        rows.append({
            'region': region_name,
            'soil_loss': mean_of(results['soil_loss']),
            'r_factor_div_10': mean_of(results['r_factor']) / 10,
            'slope': mean_of(results['slope']),
        })
    return pandas.DataFrame(
        rows, columns=['region', 'soil_loss', 'r_factor_div_10', 'slope'])
