import numpy as np
import pytest
from mpi4py import MPI
from petsc4py import PETSc

from bpice import GridTopology, ParameterField
from bpice.nodetypes import NODE_BOUNDARY, NODE_EXTERIOR, NODE_INTERIOR, classify

Mx, My = 12, 9


def _get_grid():
    return GridTopology(Mx, My, 1000.0, 800.0, comm=PETSc.COMM_WORLD)


def _get_island():
    """Thickness over the whole grid: an island spanning the middle columns, so
    that it crosses the boundary between the patches of two or more ranks."""
    j, i = np.meshgrid(np.arange(My), np.arange(Mx), indexing="ij")
    island = (i >= 3) & (i <= 8) & (j >= 2) & (j <= 6)
    return np.where(island, 100.0 + i + 10.0 * j, 0.0)


def _everywhere(flag):
    # true only if flag holds on every rank
    return MPI.COMM_WORLD.allreduce(bool(flag), op=MPI.LAND)


def _build(grid, H):
    owned = H[grid.ys : grid.ys + grid.ym, grid.xs : grid.xs + grid.xm]
    return ParameterField(grid).build(1.0e5, owned, 0.0, -50.0)


@pytest.mark.parallel(nprocs=2)
def test_parallel_ownership():
    grid = _get_grid()
    assert grid.comm.getSize() == MPI.COMM_WORLD.Get_size()
    assert grid.countowned() == Mx * My
    # owned patches tile the grid
    lx, ly = grid.ownershipranges()
    assert sum(lx) == Mx and sum(ly) == My


@pytest.mark.parallel(nprocs=2)
def test_parallel_node_type_counts():
    grid = _get_grid()
    H = _get_island()
    params = _build(grid, H)
    serial = classify(H, 10.0)
    expected = tuple(
        int(np.count_nonzero(serial == t)) for t in (NODE_INTERIOR, NODE_BOUNDARY, NODE_EXTERIOR)
    )
    assert params.countnodetypes() == expected
    assert expected == (12, 18, Mx * My - 30)
    owned = serial[grid.ys : grid.ys + grid.ym, grid.xs : grid.xs + grid.xm]
    assert _everywhere(np.array_equal(params.nodetypes(), owned))


@pytest.mark.parallel(nprocs=2)
def test_parallel_ghosts():
    grid = _get_grid()
    H = _get_island()
    params = _build(grid, H)
    (gxs, gys), (gxm, gym) = grid.ghostcorners()
    window = (slice(gys, gys + gym), slice(gxs, gxs + gxm))
    # halo values are the owned values of the neighbors
    assert _everywhere(np.array_equal(params.field("thickness", ghosted=True), H[window]))
    assert _everywhere(np.array_equal(params.nodetypes(ghosted=True), classify(H, 10.0)[window]))
