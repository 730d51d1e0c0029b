import numpy as np
import pytest
from petsc4py import PETSc

from bpice import GridTopology, MultigridParameterHierarchy, ParameterField, checkcompatibility
from bpice.blatter import solverdm
from bpice.grid import XY_PERIODIC, X_PERIODIC, grid_z
from bpice.nodetypes import NODE_BOUNDARY, NODE_EXTERIOR, NODE_INTERIOR, classify
from bpice.parameters import BED, FLOATATION, THICKNESS


def _get_grid(Mx=6, My=5, periodicity=0):
    return GridTopology(Mx, My, 1000.0, 500.0, periodicity=periodicity, comm=PETSc.COMM_SELF)


def _get_checkerboard(grid):
    X, Y = np.meshgrid(np.arange(grid.xs, grid.xs + grid.xm), np.arange(grid.ys, grid.ys + grid.ym))
    return np.where((X + Y) % 2 == 0, 200.0, 0.0)


def _restrictaverage(fine, coarse):
    """5-point average of thickness (the array rim repeats itself); copies the
    other fields."""
    H = np.pad(fine.field("thickness"), 1, mode="edge")
    Hc = (H[1:-1, 1:-1] + H[:-2, 1:-1] + H[2:, 1:-1] + H[1:-1, :-2] + H[1:-1, 2:]) / 5.0
    P = fine.owned()
    P[:, :, THICKNESS] = Hc
    coarse.setowned(P)


def test_grid_sizes():
    grid = _get_grid()
    assert (grid.xs, grid.ys, grid.xm, grid.ym) == (0, 0, 6, 5)
    assert grid.dx == pytest.approx(400.0)
    assert grid.dy == pytest.approx(250.0)
    assert grid.countowned() == 30
    X, Y = grid.coordinates()
    assert X.shape == (5, 6)
    assert X[0, 0] == pytest.approx(-1000.0) and X[0, -1] == pytest.approx(1000.0)
    assert Y[-1, 0] == pytest.approx(500.0)
    assert grid.ownedslice() == (slice(0, 5), slice(0, 6))


def test_grid_periodic():
    grid = _get_grid(periodicity=XY_PERIODIC)
    assert grid.dx == pytest.approx(2000.0 / 6)
    assert grid.dy == pytest.approx(200.0)
    (gxs, gys), (gxm, gym) = grid.ghostcorners()
    assert (gxs, gys) == (-1, -1)
    assert (gxm, gym) == (8, 7)
    assert grid.ownedslice() == (slice(1, 6), slice(1, 7))


def test_grid_errors():
    with pytest.raises(ValueError):
        GridTopology(1, 5, 1.0, 1.0, comm=PETSc.COMM_SELF)
    with pytest.raises(ValueError):
        GridTopology(5, 5, 1.0, 1.0, comm=PETSc.COMM_SELF, ghost_width=0)


def test_grid_z():
    assert grid_z(-100.0, 300.0, 5, 0) == -100.0
    assert grid_z(-100.0, 300.0, 5, 4) == 200.0
    assert grid_z(0.0, 300.0, 4, 1) == pytest.approx(100.0)


def test_parameters_build():
    grid = _get_grid()
    X, _ = grid.coordinates()
    bed = np.where(X < 0.0, 100.0, -1000.0)  # grounded on the left, floating on the right
    params = ParameterField(grid, debug=True).build(1.0e5, 200.0, bed, 0.0)
    alpha = 910.0 / 1028.0
    P = params.owned()
    left, right = X < 0.0, X > 0.0
    assert np.allclose(P[left][:, BED], 100.0)
    assert np.allclose(P[right][:, BED], -alpha * 200.0)
    assert np.all(P[left][:, FLOATATION] < 0.0)
    assert np.all(P[right][:, FLOATATION] > 0.0)
    assert np.allclose(P[right][:, FLOATATION], 1000.0 - alpha * 200.0)
    assert params.field("tauc") == pytest.approx(np.full((5, 6), 1.0e5))
    # fully icy, non-periodic: the rim only touches fewer than four elements
    node_type = params.nodetypes()
    assert np.all(node_type[1:-1, 1:-1] == NODE_INTERIOR)
    assert np.all(node_type[0, :] == NODE_BOUNDARY)
    assert params.countnodetypes() == (12, 18, 0)


def test_parameters_shape():
    grid = _get_grid()
    params = ParameterField(grid)
    with pytest.raises(ValueError):
        params.setowned(np.zeros((6, 5, 6)))
    with pytest.raises(ValueError):
        params.build(1.0e5, np.zeros((6, 5)), 0.0, 0.0)


def test_parameters_island():
    grid = _get_grid(Mx=7, My=7)
    H = np.zeros((7, 7))
    H[2:5, 2:5] = 100.0
    params = ParameterField(grid).build(1.0e5, H, 0.0, -50.0)
    assert np.array_equal(params.nodetypes(), classify(H, 10.0))
    assert params.countnodetypes() == (1, 8, 40)
    # re-classification of unchanged thickness changes nothing
    assert np.array_equal(params.computenodetypes(10.0), params.nodetypes())


def test_parameters_periodic():
    grid = _get_grid(periodicity=XY_PERIODIC)
    params = ParameterField(grid).build(1.0e5, 500.0, 0.0, -50.0)
    assert np.all(params.nodetypes() == NODE_INTERIOR)
    grid = _get_grid(periodicity=X_PERIODIC)
    params = ParameterField(grid).build(1.0e5, 500.0, 0.0, -50.0)
    node_type = params.nodetypes()
    assert np.all(node_type[1:-1, :] == NODE_INTERIOR)
    assert np.all(node_type[0, :] == NODE_BOUNDARY)
    assert np.all(node_type[-1, :] == NODE_BOUNDARY)


def test_parameters_ghosts():
    grid = _get_grid(periodicity=X_PERIODIC)
    X, _ = grid.coordinates()
    params = ParameterField(grid).build(1.0e5, 100.0 + X / 100.0, 0.0, -50.0)
    H = params.field("thickness", ghosted=True)
    # the ghost column left of i = 0 holds i = Mx - 1
    assert np.allclose(H[:, 0], H[:, -2])
    assert np.allclose(H[:, -1], H[:, 1])


def test_compatibility():
    assert checkcompatibility(5, 1, 2)
    assert checkcompatibility(5, 3, 2)
    assert checkcompatibility(17, 5, 2)
    assert checkcompatibility(10, 2, 3)
    with pytest.raises(ValueError) as excinfo:
        checkcompatibility(6, 2, 2)
    message = str(excinfo.value)
    assert "Mz = 6" in message
    assert "-bp_pc_mg_levels 2" in message
    assert "3, 5, 7" in message
    with pytest.raises(ValueError) as excinfo:
        checkcompatibility(5, 4, 2)
    assert "9, 17, 25" in str(excinfo.value)
    with pytest.raises(ValueError):
        checkcompatibility(1, 1, 2)


def test_hierarchy_levels():
    grid = _get_grid()
    dm = solverdm(grid, 5, 2, prefix="test_hierarchy_levels_")
    hierarchy = MultigridParameterHierarchy(grid, debug=True)
    finest = hierarchy.attach(dm)
    assert finest.Mz == 5
    assert dm.getAppCtx() is finest
    finest.parameters.build(1.0e5, _get_checkerboard(grid) + 100.0, 0.0, -50.0)
    finest.sethardness(grid, 2.0e8)

    coarse = dm.coarsen()
    coarsest = coarse.coarsen()
    assert sorted(hierarchy.levels) == [0, 1, 2]
    assert hierarchy.levels[1].Mz == 3
    assert hierarchy.levels[2].Mz == 2
    assert coarse.getSizes() == (3, 6, 5)

    hierarchy.restrict(finest, coarse.getAppCtx())
    hierarchy.restrict(coarse.getAppCtx(), coarsest.getAppCtx())
    level2 = hierarchy.levels[2]
    assert np.allclose(level2.parameters.owned(), finest.parameters.owned())
    assert np.array_equal(level2.parameters.nodetypes(), finest.parameters.nodetypes())
    assert np.allclose(level2.hardnessarray(grid), 2.0e8)


def test_hierarchy_rederives_node_types():
    grid = _get_grid()
    dm = solverdm(grid, 5, 2, prefix="test_hierarchy_rederives_")
    hierarchy = MultigridParameterHierarchy(grid, restrict2d=_restrictaverage)
    finest = hierarchy.attach(dm)
    finest.parameters.build(1.0e5, _get_checkerboard(grid), 0.0, -50.0)
    # every element has an ice-free corner
    assert np.all(finest.parameters.nodetypes() == NODE_EXTERIOR)

    coarse = dm.coarsen().getAppCtx()
    hierarchy.restrict(finest, coarse)
    assert np.all(coarse.parameters.field("thickness") >= 40.0)
    node_type = coarse.parameters.nodetypes()
    # restricting the labels would have left every node exterior
    assert np.all(node_type[1:-1, 1:-1] == NODE_INTERIOR)
    assert not np.any(node_type == NODE_EXTERIOR)
