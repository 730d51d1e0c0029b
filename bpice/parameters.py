import numpy as np
from mpi4py import MPI

from .nodetypes import (
    NODE_BOUNDARY,
    NODE_EXTERIOR,
    NODE_INTERIOR,
    checknodetypes,
    classify,
)

# per-node parameters, in storage order
FIELDS = ("tauc", "thickness", "sea_level", "bed", "node_type", "floatation")
TAUC, THICKNESS, SEA_LEVEL, BED, NODE_TYPE, FLOATATION = range(len(FIELDS))


class ParameterField:
    """Map-plane parameters needed at every finite element node: basal yield
    stress, ice thickness, sea level, bed elevation, node type, and floatation
    (floating minus grounded surface elevation; positive where ice floats).

    Values live in a global Vec (owned nodes) and a ghosted local Vec of a 2D
    DMDA with len(FIELDS) degrees of freedom.  Call updateghosts() after every
    change to the owned values before reading ghosted values.  The grid is a
    non-owning reference."""

    def __init__(self, grid, debug=False):
        self.grid = grid
        self.debug = debug
        self.da = grid.getdm(dof=len(FIELDS), stencil_width=1)
        self.gvec = self.da.createGlobalVec()
        self.lvec = self.da.createLocalVec()
        (_, _), (self.gxm, self.gym) = self.da.getGhostCorners()

    def owned(self):
        """Return a copy of the owned values, shape (ym, xm, len(FIELDS))."""
        a = self.gvec.getArray(readonly=True)
        return np.array(a).reshape(self.grid.ym, self.grid.xm, len(FIELDS))

    def setowned(self, values):
        """Replace the owned values; ghosts are stale until updateghosts()."""
        values = np.asarray(values, dtype=float)
        if values.shape != (self.grid.ym, self.grid.xm, len(FIELDS)):
            raise ValueError(f"parameter array has wrong shape {values.shape}")
        self.gvec.setArray(values.ravel())

    def ghosted(self):
        """Return a read-only view of the ghosted values, shape (gym, gxm,
        len(FIELDS))."""
        a = self.lvec.getArray(readonly=True)
        return a.reshape(self.gym, self.gxm, len(FIELDS))

    def field(self, name, ghosted=False):
        """Return one parameter as a 2D array."""
        k = FIELDS.index(name)
        if ghosted:
            return np.array(self.ghosted()[:, :, k])
        return self.owned()[:, :, k]

    def updateghosts(self):
        """Refresh halo values from their owners."""
        self.da.globalToLocal(self.gvec, self.lvec)

    def build(
        self,
        tauc,
        thickness,
        bed,
        sea_level,
        ice_density=910.0,
        ocean_density=1028.0,
        min_thickness=10.0,
    ):
        """Set parameters on the owned patch from basal yield stress, ice
        thickness, bed elevation and sea level (arrays indexed [j, i] over the
        owned patch, or scalars), compute node types, and update ghosts.

        The bed elevation used by the solver is the base of the ice: the bed
        itself where ice is grounded and the floating ice bottom elsewhere."""
        shape = (self.grid.ym, self.grid.xm)
        tauc, H, b, sl = [
            np.broadcast_to(np.asarray(v, dtype=float), shape)
            for v in (tauc, thickness, bed, sea_level)
        ]
        if self.debug:
            assert np.all(H >= 0.0), "ice thickness has to be nonnegative"
        alpha = ice_density / ocean_density
        b_grounded = b
        b_floating = sl - alpha * H
        s_grounded = b + H
        s_floating = sl + (1.0 - alpha) * H

        P = np.zeros(shape + (len(FIELDS),))
        P[:, :, TAUC] = tauc
        P[:, :, THICKNESS] = H
        P[:, :, SEA_LEVEL] = sl
        P[:, :, BED] = np.maximum(b_grounded, b_floating)
        P[:, :, NODE_TYPE] = NODE_EXTERIOR
        P[:, :, FLOATATION] = s_floating - s_grounded
        self.setowned(P)
        self.updateghosts()  # classification reads thickness in the halo
        self.computenodetypes(min_thickness)
        return self

    def computenodetypes(self, min_thickness):
        """Re-derive node types from the current (ghosted) thickness, then
        update ghosts so that neighbors agree on labels in the halo."""
        H = self.ghosted()[:, :, THICKNESS]
        node_type = classify(H, min_thickness)
        sj, si = self.grid.ownedslice(stencil_width=1)
        P = self.owned()
        P[:, :, NODE_TYPE] = node_type[sj, si]
        if self.debug:
            assert checknodetypes(P[:, :, NODE_TYPE])
        self.setowned(P)
        self.updateghosts()
        return P[:, :, NODE_TYPE].astype(int)

    def nodetypes(self, ghosted=False):
        """Return node types as an integer array."""
        return np.rint(self.field("node_type", ghosted=ghosted)).astype(int)

    def countnodetypes(self):
        """Return global numbers of interior, boundary, and exterior nodes."""
        node_type = self.nodetypes()
        local = np.array(
            [np.count_nonzero(node_type == t) for t in (NODE_INTERIOR, NODE_BOUNDARY, NODE_EXTERIOR)]
        )
        comm = self.grid.comm.tompi4py()
        return tuple(int(c) for c in comm.allreduce(local, op=MPI.SUM))

    def destroy(self):
        self.gvec.destroy()
        self.lvec.destroy()
