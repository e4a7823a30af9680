"""Bounded-memory, bounded-time evaluation of raster handles in tiles."""
import collections
import concurrent.futures
import dataclasses
import enum
import logging
import math
import time

import numpy

from . import evaluation

LOGGER = logging.getLogger(__name__)
_LOGGING_PERIOD = 5.0  # min 5.0 seconds per update log message for the module


class BudgetExceeded(Exception):
    """Raised when a request exceeds its pixel ceiling or time budget."""


def _transition(state, new_state):
    LOGGER.debug(f'execution state {state.value} -> {new_state.value}')
    return new_state


class ExecutionState(enum.Enum):
    PLANNED = 'planned'
    TILING = 'tiling'
    EXECUTING = 'executing'
    MERGED = 'merged'
    DEGRADED = 'degraded'
    FAILED = 'failed'


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """How a request over budget is retried at coarser resolution.

    Attributes:
        max_attempts (int): total attempts including the first.
        backoff_factor (float): the pixel size is multiplied by this on
            each retry.
    """
    max_attempts: int = 3
    backoff_factor: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(
                f'max_attempts must be at least 1, got {self.max_attempts}')
        if self.backoff_factor <= 1:
            raise ValueError(
                f'backoff_factor must be greater than 1, got '
                f'{self.backoff_factor}')


@dataclasses.dataclass(frozen=True)
class Tile:
    index: int
    row_offset: int
    col_offset: int
    grid: object


@dataclasses.dataclass(frozen=True)
class ExecutionResult:
    """The merged value of a request and how it was obtained."""
    value: object
    grid: object
    state: ExecutionState
    attempts: int

    @property
    def degraded(self):
        return self.state is ExecutionState.DEGRADED

    @property
    def effective_scale(self):
        return self.grid.scale


class TileExecutor:
    """Evaluate requests tile by tile under a declared budget.

    Args:
        pixel_ceiling (int): largest number of pixels a request grid may
            have before it is coarsened by backoff steps until it fits.
        tile_budget (int): largest number of cells (pixels times stacked
            layers) evaluated at once.
        n_workers (int): ``-1`` or ``0`` evaluates tiles in this thread,
            a positive number evaluates them in a pool of that many threads.
        retry_policy (RetryPolicy): degrade behavior, defaults to
            ``RetryPolicy()``.
        time_budget (float): seconds a single attempt may run, or ``None``
            for no limit.
    """

    def __init__(self, pixel_ceiling=int(1e10), tile_budget=2**20,
                 n_workers=-1, retry_policy=None, time_budget=None):
        if pixel_ceiling < 1:
            raise ValueError(f'pixel_ceiling must be positive: {pixel_ceiling}')
        if tile_budget < 1:
            raise ValueError(f'tile_budget must be positive: {tile_budget}')
        self.pixel_ceiling = pixel_ceiling
        self.tile_budget = tile_budget
        self.n_workers = n_workers
        self.retry_policy = retry_policy or RetryPolicy()
        self.time_budget = time_budget

    def plan(self, grid, depth=1):
        """Split ``grid`` into square tiles that fit the tile budget.

        Args:
            grid (Grid): the request grid.
            depth (int): stacked layers per pixel of the evaluated graph.

        Returns:
            list of ``Tile`` in row-major order. The tiles cover ``grid``
            exactly and do not overlap.

        Raises:
            BudgetExceeded if ``grid`` has more pixels than the ceiling.
        """
        if grid.n_pixels > self.pixel_ceiling:
            raise BudgetExceeded(
                f'{grid.n_pixels} pixels at scale {grid.scale} exceeds the '
                f'ceiling of {self.pixel_ceiling}')
        side = max(1, math.isqrt(int(self.tile_budget // max(1, depth))))
        tiles = []
        for row_offset in range(0, grid.n_rows, side):
            n_rows = min(side, grid.n_rows - row_offset)
            for col_offset in range(0, grid.n_cols, side):
                n_cols = min(side, grid.n_cols - col_offset)
                tiles.append(Tile(
                    len(tiles), row_offset, col_offset,
                    grid.window(row_offset, col_offset, n_rows, n_cols)))
        return tiles

    def execute(self, grid, tile_func, merge_func, initial_factory,
                depth=1):
        """Evaluate every tile of ``grid`` and fold the partial results.

        Args:
            grid (Grid): the request grid at the requested scale.
            tile_func (callable): ``tile_func(tile)`` returns the partial
                result of one tile.
            merge_func (callable): ``merge_func(accumulator, tile, partial)``
                returns the updated accumulator. Called in tile order.
            initial_factory (callable): ``initial_factory(grid)`` returns a
                fresh accumulator for an attempt on ``grid``.
            depth (int): stacked layers per pixel, used to size tiles.

        Returns:
            ``ExecutionResult``; its state is ``DEGRADED`` when the request
            was over the pixel ceiling or an attempt ran out of time, and
            its grid is then coarser than the request.

        Raises:
            BudgetExceeded when every attempt allowed by the retry policy
                ran out of time. Any error raised by ``tile_func`` aborts the
                request.
        """
        request_grid = grid
        state = ExecutionState.PLANNED
        grid = self._fit_to_ceiling(request_grid, grid)
        degraded = grid is not request_grid
        for attempt in range(1, self.retry_policy.max_attempts + 1):
            try:
                tiles = self.plan(grid, depth)
                state = _transition(state, ExecutionState.TILING)
                state = _transition(state, ExecutionState.EXECUTING)
                accumulator = self._run(
                    tiles, tile_func, merge_func, initial_factory(grid))
            except BudgetExceeded as error:
                if attempt == self.retry_policy.max_attempts:
                    _transition(state, ExecutionState.FAILED)
                    raise
                coarser = grid.scale * self.retry_policy.backoff_factor
                LOGGER.warning(
                    f'{error}; retrying at scale {coarser} (attempt '
                    f'{attempt + 1} of {self.retry_policy.max_attempts})')
                state = _transition(state, ExecutionState.PLANNED)
                grid = self._fit_to_ceiling(
                    request_grid, request_grid.rescaled(coarser))
                degraded = True
                continue
            except Exception:
                _transition(state, ExecutionState.FAILED)
                raise

            if degraded:
                state = _transition(state, ExecutionState.DEGRADED)
            else:
                state = _transition(state, ExecutionState.MERGED)
            return ExecutionResult(accumulator, grid, state, attempt)

    def _fit_to_ceiling(self, request_grid, grid):
        """Coarsen ``grid`` by backoff steps until it is within the ceiling.

        Returns:
            ``grid`` itself when it is already within the ceiling, otherwise
            ``request_grid`` rescaled to the first fitting scale.
        """
        while grid.n_pixels > self.pixel_ceiling:
            coarser = grid.scale * self.retry_policy.backoff_factor
            LOGGER.warning(
                f'{grid.n_pixels} pixels at scale {grid.scale} exceeds the '
                f'ceiling of {self.pixel_ceiling}; degrading to scale '
                f'{coarser}')
            grid = request_grid.rescaled(coarser)
        return grid

    def _run(self, tiles, tile_func, merge_func, accumulator):
        deadline = None
        if self.time_budget is not None:
            deadline = time.monotonic() + self.time_budget

        def check_deadline():
            if deadline is not None and time.monotonic() > deadline:
                raise BudgetExceeded(
                    f'time budget of {self.time_budget}s exceeded')

        def timed_tile_func(tile):
            check_deadline()
            return tile_func(tile)

        last_log_time = time.time()
        n_tiles = len(tiles)

        def log_progress(n_done):
            nonlocal last_log_time
            if time.time() - last_log_time > _LOGGING_PERIOD:
                LOGGER.info(
                    f'{100.0 * n_done / n_tiles:.1f}% of {n_tiles} tiles '
                    f'complete')
                last_log_time = time.time()

        if self.n_workers is None or self.n_workers <= 0:
            for tile in tiles:
                accumulator = merge_func(
                    accumulator, tile, timed_tile_func(tile))
                log_progress(tile.index + 1)
            return accumulator

        # keep a bounded window of submitted tiles and merge the oldest
        # first so the fold order matches the sequential path
        window = 2 * self.n_workers
        pending = collections.deque()
        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.n_workers)
        try:
            tile_iter = iter(tiles)
            for tile in tile_iter:
                pending.append((tile, pool.submit(timed_tile_func, tile)))
                if len(pending) >= window:
                    break
            while pending:
                tile, future = pending.popleft()
                accumulator = merge_func(accumulator, tile, future.result())
                log_progress(tile.index + 1)
                next_tile = next(tile_iter, None)
                if next_tile is not None:
                    pending.append(
                        (next_tile, pool.submit(timed_tile_func, next_tile)))
        finally:
            pool.shutdown(wait=True, cancel_futures=True)
        return accumulator

    def compute(self, handle, grid):
        """Evaluate ``handle`` over ``grid`` into a single stitched array.

        Returns:
            ``ExecutionResult`` whose value has shape ``(rows, cols)``, or
            ``(layers, rows, cols)`` for series and stacks.
        """
        def tile_func(tile):
            return evaluation.evaluate(handle, tile.grid, {})

        def merge(stitched, tile, values):
            if stitched[0] is None:
                stitched[0] = numpy.full(
                    values.shape[:-2] + stitched[1].shape, numpy.nan)
            stitched[0][
                ...,
                tile.row_offset:tile.row_offset + tile.grid.n_rows,
                tile.col_offset:tile.col_offset + tile.grid.n_cols] = values
            return stitched

        result = self.execute(
            grid, tile_func, merge, lambda g: [None, g], depth=handle.depth)
        return dataclasses.replace(result, value=result.value[0])
