"""Soil loss composition and severity classification."""
import dataclasses
import logging
import math

import numpy

from . import raster

LOGGER = logging.getLogger(__name__)

NODATA_CLASS = 255


@dataclasses.dataclass(frozen=True)
class SeverityClass:
    """One severity bin covering ``[low, high)`` in t/ha/yr."""
    class_id: int
    label: str
    low: float
    high: float
    description: str = ''
    action: str = ''


class ClassificationScheme:
    """An ordered, contiguous set of bins covering ``[0, inf)``.

    Values below the first lower bound (negative soil loss can only come
    from bad inputs) are placed in the first class so every real number has
    exactly one class. NaN has none and receives ``nodata``.
    """

    def __init__(self, classes, nodata=NODATA_CLASS):
        classes = tuple(classes)
        if not classes:
            raise ValueError('A classification scheme needs at least 1 class')
        if classes[0].low != 0:
            raise ValueError(
                f'The first class must start at 0, not {classes[0].low}')
        if not math.isinf(classes[-1].high):
            raise ValueError(
                f'The last class must be unbounded, not end at '
                f'{classes[-1].high}')
        for severity_class in classes:
            if not severity_class.low < severity_class.high:
                raise ValueError(
                    f'Class {severity_class.class_id} bounds must increase: '
                    f'{severity_class.low}, {severity_class.high}')
        for lower, upper in zip(classes, classes[1:]):
            if lower.high != upper.low:
                raise ValueError(
                    f'Classes {lower.class_id} and {upper.class_id} are not '
                    f'contiguous: {lower.high} != {upper.low}')
        class_ids = [c.class_id for c in classes]
        if len(set(class_ids)) != len(class_ids) or nodata in class_ids:
            raise ValueError(
                f'Class ids must be unique and differ from the nodata value '
                f'{nodata}: {class_ids}')
        self.classes = classes
        self.nodata = nodata

    def __iter__(self):
        return iter(self.classes)

    def __len__(self):
        return len(self.classes)

    @property
    def class_ids(self):
        return tuple(c.class_id for c in self.classes)

    @property
    def lows(self):
        return tuple(float(c.low) for c in self.classes)

    def get(self, class_id):
        for severity_class in self.classes:
            if severity_class.class_id == class_id:
                return severity_class
        raise KeyError(class_id)

    def classify_value(self, value):
        """Class id of a single number, ``nodata`` for NaN."""
        if math.isnan(value):
            return self.nodata
        index = int(numpy.searchsorted(self.lows, value, side='right')) - 1
        return self.classes[max(index, 0)].class_id


SEVERITY_SCHEME = ClassificationScheme([
    SeverityClass(1, 'Very Low', 0, 5, 'Tolerable - Sustainable',
                  'Maintain current practices, mulching'),
    SeverityClass(2, 'Low', 5, 10, 'Slight erosion risk',
                  'Maintain current practices, mulching'),
    SeverityClass(3, 'Moderate', 10, 20, 'Conservation needed',
                  'Contour farming, cover crops'),
    SeverityClass(4, 'High', 20, 40, 'Significant soil loss',
                  'Terracing, grass waterways'),
    SeverityClass(5, 'Very High', 40, 80, 'Severe erosion',
                  'Afforestation, check dams (urgent)'),
    SeverityClass(6, 'Severe', 80, math.inf, 'Critical - Urgent action',
                  'Afforestation, check dams (urgent)'),
])


def soil_loss(r_factor, k_factor, ls_factor, c_factor, p_factor):
    """``A = R * K * LS * C * P`` in t/ha/yr."""
    return (r_factor * k_factor * ls_factor * c_factor * p_factor).rename(
        'soil_loss')


def classify(handle, scheme=SEVERITY_SCHEME):
    """Map every pixel to the id of its severity class.

    Returns:
        A ``uint8`` RasterHandle with ``scheme.nodata`` where ``handle`` is
        no-data.
    """
    classified = raster.combine(
        'classify', handle, lows=scheme.lows, class_ids=scheme.class_ids,
        nodata=scheme.nodata)
    return dataclasses.replace(classified, dtype='uint8').rename(
        'erosion_class')
