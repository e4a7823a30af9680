"""Named analysis regions and their rasterization onto pixel grids."""
import dataclasses
import hashlib
import logging

import numpy
import shapely
import shapely.ops

LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Region:
    """A named polygon used to clip rasters and scope zonal reductions.

    Attributes:
        name (str): display name, e.g. the district name.
        geometry: a shapely (multi)polygon in the coordinates of ``crs``.
        crs (str): coordinate reference identifier.
        simplify_tolerance (float): if positive, pixel membership is tested
            against the geometry simplified by this distance.
        attributes (dict): extra fields carried from the boundary source.
    """
    name: str
    geometry: object
    crs: str
    simplify_tolerance: float = 0.0
    attributes: dict = dataclasses.field(default_factory=dict)

    def __post_init__(self):
        if self.geometry is None or self.geometry.is_empty:
            raise ValueError(f'Region {self.name} has an empty geometry')
        if self.simplify_tolerance < 0:
            raise ValueError(
                f'Simplify tolerance must be non-negative, got '
                f'{self.simplify_tolerance}')
        if self.simplify_tolerance > 0:
            mask_geometry = self.geometry.simplify(
                self.simplify_tolerance, preserve_topology=True)
        else:
            mask_geometry = self.geometry
        shapely.prepare(mask_geometry)
        object.__setattr__(self, '_mask_geometry', mask_geometry)

        digest = hashlib.sha1(self.name.encode('utf-8'))
        digest.update(shapely.to_wkb(self.geometry))
        digest.update(repr(self.simplify_tolerance).encode('utf-8'))
        object.__setattr__(self, 'key', digest.hexdigest())

    def __repr__(self):
        return f'Region({self.name!r}, key={self.key[:12]})'

    @property
    def mask_geometry(self):
        """The geometry pixel centers are tested against."""
        return self._mask_geometry

    @property
    def bounds(self):
        return tuple(float(b) for b in self._mask_geometry.bounds)

    @property
    def area(self):
        """Area of the polygon in squared CRS units."""
        return self.geometry.area


def union(regions, name):
    """Merge several regions into one, e.g. districts into their state."""
    regions = list(regions)
    if not regions:
        raise ValueError('Cannot take the union of zero regions')
    crs = regions[0].crs
    for region in regions[1:]:
        if region.crs != crs:
            raise ValueError(
                f'Region {region.name} is in {region.crs}, expected {crs}')
    return Region(
        name, shapely.ops.unary_union([r.geometry for r in regions]), crs,
        simplify_tolerance=max(r.simplify_tolerance for r in regions))


def region_mask(region, grid):
    """Boolean array, true where a pixel center of ``grid`` is in ``region``.

    Args:
        region (Region): the region to rasterize.
        grid (Grid): the pixel grid.

    Returns:
        numpy bool array of shape ``(grid.n_rows, grid.n_cols)``.
    """
    xs, ys = grid.pixel_centers()
    xx, yy = numpy.meshgrid(xs, ys)
    return shapely.contains_xy(region.mask_geometry, xx, yy)
