import numpy as np
from petsc4py import PETSc

from .parameters import ParameterField


def checkcompatibility(Mz, mg_levels, coarsening_factor, option="-bp_pc_mg_levels"):
    """Stop if the number of vertical levels Mz, the number of multigrid levels,
    and the coarsening factor are not compatible.  Each coarsening has to map
    Mz - 1 intervals onto (Mz - 1) / C intervals exactly."""
    C, M, mz = coarsening_factor, mg_levels, Mz
    if Mz < 2:
        raise ValueError(f"Blatter solver needs at least 2 vertical levels, got Mz = {Mz}")
    if C < 1:
        raise ValueError(f"coarsening factor has to be positive, got {C}")
    while M > 1:
        if ((mz - 1) // C) * C != mz - 1:
            N = C ** (mg_levels - 1)
            raise ValueError(
                "Blatter stress balance solver: settings\n"
                f"Mz = {Mz},\n"
                f"coarsening_factor = {C},\n"
                f"and '{option} {mg_levels}' are not compatible.\n"
                f"To use N = {mg_levels} multigrid levels with the coarsening factor C = {C}\n"
                "Mz has to be equal to A * C^(N - 1) + 1\n"
                f"for some positive integer A, e.g. {N + 1}, {2 * N + 1}, {3 * N + 1}, ..."
            )
        mz = (mz - 1) // C + 1
        M -= 1
    return True


class LevelData:
    """Data attached to the solver DM of one multigrid level: map-plane
    parameters (with node types derived on this level) and ice hardness on this
    level's sigma grid.  Holds no reference to the solver DM itself."""

    def __init__(self, grid, level, Mz, hardness_dm, debug=False):
        self.level = level
        self.Mz = Mz
        self.parameters = ParameterField(grid, debug=debug)
        self.hardness_dm = hardness_dm
        self.hardness = hardness_dm.createGlobalVec()
        self.interpolation = None  # from the next coarser level, and its scaling
        self.rscale = None

    def hardnessarray(self, grid):
        """Return ice hardness on owned nodes, shape (ym, xm, Mz)."""
        a = self.hardness.getArray(readonly=True)
        return np.array(a).reshape(grid.ym, grid.xm, self.Mz)

    def sethardness(self, grid, values):
        values = np.broadcast_to(np.asarray(values, dtype=float), (grid.ym, grid.xm, self.Mz))
        self.hardness.setArray(np.ascontiguousarray(values).ravel())

    def destroy(self):
        self.parameters.destroy()
        self.hardness.destroy()
        self.hardness_dm.destroy()
        if self.interpolation is not None:
            self.interpolation.destroy()
            self.rscale.destroy()


class MultigridParameterHierarchy:
    """Keeps per-level parameters consistent with the finest level while the
    nonlinear solver's multigrid preconditioner coarsens the solver DM.

    attach() sets up the finest level and registers coarsening and restriction
    hooks with the solver DM.  Whenever PETSc creates a coarser DM the coarsening
    hook allocates that level's data and registers the same hooks on the new DM,
    so a third, fourth, ... level is handled identically.  The restriction hook
    restricts thickness, bed, sea level, yield stress, and floatation, and then
    *re-computes* node types from the restricted thickness.  Node types are never
    restricted: interpolating discrete labels would move the ice margin and the
    grounding line.  Ice hardness is restricted with the interpolation operator
    of the grid substrate.

    A custom 2D restriction can be supplied as restrict2d(fine, coarse), where
    fine and coarse are ParameterField instances."""

    def __init__(self, grid, min_thickness=10.0, restrict2d=None, debug=False):
        self.grid = grid
        self.min_thickness = min_thickness
        self.debug = debug
        if restrict2d is None:
            restrict2d = self._restrictcopy
        self.restrict2d = restrict2d
        self.levels = {}

    def setuplevel(self, dm, level):
        """Allocate parameter storage for the solver DM dm and attach it."""
        Mz = dm.getSizes()[0]  # the vertical is stored first
        data = LevelData(self.grid, level, Mz, dm.duplicate(dof=1), debug=self.debug)
        dm.setAppCtx(data)
        self.levels[level] = data
        return data

    def attach(self, dm):
        """Set up the finest level and register hooks; returns its LevelData."""
        data = self.setuplevel(dm, 0)
        dm.addCoarsenHook(self._coarsenhook, self._restricthook)
        return data

    def finest(self):
        return self.levels[0]

    def _coarsenhook(self, fine, coarse):
        finedata = fine.getAppCtx()
        coarsedata = self.setuplevel(coarse, finedata.level + 1)
        coarsedata.interpolation, coarsedata.rscale = coarsedata.hardness_dm.createInterpolation(
            finedata.hardness_dm
        )
        coarse.addCoarsenHook(self._coarsenhook, self._restricthook)

    def _restricthook(self, fine, mrestrict, rscale, inject, coarse):
        self.restrict(fine.getAppCtx(), coarse.getAppCtx())

    def _restrictcopy(self, fine, coarse):
        self.grid.restrict2d(fine.gvec, coarse.gvec)

    def restrict(self, finedata, coarsedata):
        """Restrict parameters from finedata to coarsedata (LevelData)."""
        self.restrict2d(finedata.parameters, coarsedata.parameters)
        # update ghosts first: node type computation reads thickness in the halo
        coarsedata.parameters.updateghosts()
        coarsedata.parameters.computenodetypes(self.min_thickness)

        if coarsedata.interpolation is not None:
            coarsedata.interpolation.multTranspose(finedata.hardness, coarsedata.hardness)
            coarsedata.hardness.pointwiseMult(coarsedata.hardness, coarsedata.rscale)
        return coarsedata

    def destroy(self):
        """Free the storage of every level.  The solver DMs are owned by the
        caller."""
        for level in sorted(self.levels):
            self.levels[level].destroy()
        self.levels = {}

    def report(self, indent=2):
        """Print node type counts on every level set up so far."""
        indentstr = indent * " "
        for level in sorted(self.levels):
            data = self.levels[level]
            ni, nb, ne = data.parameters.countnodetypes()
            PETSc.Sys.Print(
                f"{indentstr}level {level}: Mz = {data.Mz}, {ni} interior, {nb} boundary, {ne} exterior nodes",
                comm=self.grid.comm,
            )
        return None
