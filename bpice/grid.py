import numpy as np
from mpi4py import MPI
from petsc4py import PETSc

# periodicity flags; combine with bitwise or
NOT_PERIODIC = 0
X_PERIODIC = 1
Y_PERIODIC = 2
XY_PERIODIC = 3


class GridTopology:
    r"""A GridTopology describes a distributed, equally-spaced, structured map-plane
    grid on the rectangle [x0-Lx, x0+Lx] x [y0-Ly, y0+Ly].  Partitioning is done by
    a PETSc 2D DMDA; this class only exposes the result.

    Each process owns the patch of nodes

      xs <= i < xs + xm,   ys <= j < ys + ym

    and sees a ghost strip of width ghost_width around it.  Node arrays in this
    package are stored with index order [j, i], matching the DMDA memory layout
    (i fastest).  All DMs handed out by getdm() share the same ownership ranges, so
    that arrays from different DMs line up node for node.

    The grid holds nothing which is specific to a multigrid level.
    """

    def __init__(
        self,
        Mx,
        My,
        Lx,
        Ly,
        periodicity=NOT_PERIODIC,
        comm=None,
        procs=None,
        ghost_width=1,
        x0=0.0,
        y0=0.0,
    ):
        if Mx < 2 or My < 2:
            raise ValueError(f"grid needs at least 2 nodes in each direction, got {Mx} x {My}")
        if ghost_width < 1:
            raise ValueError("ghost width must be at least 1")
        self.Mx, self.My = int(Mx), int(My)
        self.Lx, self.Ly = float(Lx), float(Ly)
        self.x0, self.y0 = float(x0), float(y0)
        self.periodicity = periodicity
        self.ghost_width = ghost_width
        self.comm = comm if comm is not None else PETSc.COMM_WORLD
        self._dms = {}

        self._da = PETSc.DMDA().create(
            dim=2,
            dof=1,
            sizes=(self.Mx, self.My),
            proc_sizes=procs,
            boundary_type=self.boundarytypes(),
            stencil_type=PETSc.DMDA.StencilType.BOX,
            stencil_width=ghost_width,
            comm=self.comm,
        )
        self._dms[(1, ghost_width)] = self._da

        (self.xs, self.ys), (self.xm, self.ym) = self._da.getCorners()

        # periodic grids do not duplicate the last column/row
        if periodicity & X_PERIODIC:
            self.dx = 2.0 * self.Lx / self.Mx
        else:
            self.dx = 2.0 * self.Lx / (self.Mx - 1)
        if periodicity & Y_PERIODIC:
            self.dy = 2.0 * self.Ly / self.My
        else:
            self.dy = 2.0 * self.Ly / (self.My - 1)

    def boundarytypes(self):
        """Return DMDA boundary types (x, y) for the periodicity setting."""
        periodic = PETSc.DM.BoundaryType.PERIODIC
        none = PETSc.DM.BoundaryType.NONE
        bx = periodic if self.periodicity & X_PERIODIC else none
        by = periodic if self.periodicity & Y_PERIODIC else none
        return (bx, by)

    def ownershipranges(self):
        """Return the numbers of owned columns per process in x and in y."""
        lx, ly = self._da.getOwnershipRanges()
        return np.asarray(lx, dtype=PETSc.IntType), np.asarray(ly, dtype=PETSc.IntType)

    def getdm(self, dof=1, stencil_width=1):
        """Return a 2D DMDA with dof degrees of freedom per node and the given
        stencil width.  DMs are cached; every one of them uses this grid's
        ownership ranges."""
        key = (dof, stencil_width)
        if key not in self._dms:
            lx, ly = self.ownershipranges()
            self._dms[key] = PETSc.DMDA().create(
                dim=2,
                dof=dof,
                sizes=(self.Mx, self.My),
                proc_sizes=(len(lx), len(ly)),
                boundary_type=self.boundarytypes(),
                stencil_type=PETSc.DMDA.StencilType.BOX,
                stencil_width=stencil_width,
                ownership_ranges=(lx, ly),
                comm=self.comm,
            )
        return self._dms[key]

    def ghostcorners(self, stencil_width=1):
        """Return ((gxs, gys), (gxm, gym)) for a DM with this stencil width.  At
        a non-periodic domain edge the ghosted patch does not extend past the
        edge."""
        return self.getdm(1, stencil_width).getGhostCorners()

    def ownedslice(self, stencil_width=1):
        """Return the (j, i) slices which pick the owned patch out of a ghosted
        array."""
        (gxs, gys), _ = self.ghostcorners(stencil_width)
        return (
            slice(self.ys - gys, self.ys - gys + self.ym),
            slice(self.xs - gxs, self.xs - gxs + self.xm),
        )

    def x(self):
        """x-coordinates of the owned columns."""
        return self.x0 - self.Lx + self.dx * np.arange(self.xs, self.xs + self.xm)

    def y(self):
        """y-coordinates of the owned rows."""
        return self.y0 - self.Ly + self.dy * np.arange(self.ys, self.ys + self.ym)

    def coordinates(self):
        """Return 2D arrays (X, Y), indexed [j, i], over the owned patch."""
        X, Y = np.meshgrid(self.x(), self.y())
        return X, Y

    def countowned(self):
        """Return the global number of owned nodes; equals Mx * My when every
        node is owned by exactly one process."""
        return int(self.comm.tompi4py().allreduce(self.xm * self.ym, op=MPI.SUM))

    def restrict2d(self, fine, coarse):
        """Restrict a 2D global Vec to the next coarser level.  Levels differ in
        the vertical only, so this is an exact copy."""
        fine.copy(coarse)
        return coarse

    def report(self, indent=2):
        """Print standard grid report."""
        indentstr = indent * " "
        PETSc.Sys.Print(
            f"{indentstr}grid: {self.Mx} x {self.My} nodes, dx = {self.dx:.3f}, dy = {self.dy:.3f},"
            f" {self.comm.getSize()} process(es)",
            comm=self.comm,
        )
        return None


def grid_z(b, H, Mz, k):
    """Elevation of sigma level k in a column with base b and thickness H."""
    return b + H * k / (Mz - 1.0)
