import numpy as np
from petsc4py import PETSc

from .assembly import SECPERA, ColumnShearAssembly
from .continuation import ContinuationSolver
from .hierarchy import MultigridParameterHierarchy, checkcompatibility
from .nodetypes import NODE_EXTERIOR
from .snes import SNESSolver

CONTINUATION_PARAMETERS = (
    "lambda_min",
    "lambda_max",
    "delta0",
    "delta_min",
    "delta_max",
    "aggressiveness",
    "max_steps",
)


def solverdm(grid, Mz, coarsening_factor, prefix="bp_"):
    """Create the 3D solver DM over grid: dof 2 (u, v), the vertical stored first
    and owned by one process, horizontal ownership of the map-plane grid, and
    refinement (coarsening) by coarsening_factor in the vertical only."""
    lx, ly = grid.ownershipranges()
    dm = PETSc.DMDA().create(
        dim=3,
        dof=2,
        sizes=(Mz, grid.Mx, grid.My),
        proc_sizes=(1, len(lx), len(ly)),
        boundary_type=(PETSc.DM.BoundaryType.NONE,) + grid.boundarytypes(),
        stencil_type=PETSc.DMDA.StencilType.BOX,
        stencil_width=1,
        ownership_ranges=((Mz,), lx, ly),
        comm=grid.comm,
        setup=False,
    )
    dm.setRefinementFactor(coarsening_factor, 1, 1)
    dm.setOptionsPrefix(prefix)
    dm.setFromOptions()
    dm.setUp()
    return dm


class Inputs:
    """Inputs of one stress balance solve, as arrays over the owned patch of the
    map-plane grid (indexed [j, i]) or scalars.  Ice hardness may be a scalar,
    a 2D array, or an array of shape (ym, xm, Mz) on the sigma grid; None means
    the solver's default."""

    def __init__(self, thickness, bed, sea_level, basal_yield_stress, ice_hardness=None):
        self.thickness = thickness
        self.bed = bed
        self.sea_level = sea_level
        self.basal_yield_stress = basal_yield_stress
        self.ice_hardness = ice_hardness


class Blatter:
    """Solver for the first-order (Blatter-Pattyn) stress balance on a sigma grid
    over the map-plane grid.

    The unknowns (u, v) live on a 3D DMDA with the vertical dimension stored
    first and never split between processes; its horizontal ownership is the one
    of the map-plane grid.  Setting '-<prefix>pc_type mg' makes PETSc coarsen this
    DM in the vertical only, by the coarsening factor C; the parameter hierarchy
    keeps map-plane parameters and ice hardness on every level.  Each update()
    solves with parameter continuation in the regularization of the viscosity.

    Options: Mz (number of sigma levels), coarsening_factor, assembly (an
    Assembly instance; a ColumnShearAssembly by default) and keyword arguments
    prefix, ice_density, ocean_density, standard_gravity, min_thickness,
    schoof_length, schoof_velocity, ice_hardness, verbosity, debug, restrict2d,
    plus the parameters of ContinuationSolver."""

    def __init__(self, grid, Mz=5, coarsening_factor=2, assembly=None, **kwargs):
        self.grid = grid
        self.Mz = Mz
        self.coarsening_factor = coarsening_factor
        self.prefix = kwargs.pop("prefix", "bp_")
        self.ice_density = kwargs.pop("ice_density", 910.0)
        self.ocean_density = kwargs.pop("ocean_density", 1028.0)
        self.standard_gravity = kwargs.pop("standard_gravity", 9.81)
        self.min_thickness = kwargs.pop("min_thickness", 10.0)
        self.schoof_length = kwargs.pop("schoof_length", 1000.0)
        self.schoof_velocity = kwargs.pop("schoof_velocity", 1.0 / SECPERA)
        self.ice_hardness = kwargs.pop("ice_hardness", 1.9e8)
        self.verbosity = kwargs.pop("verbosity", 2)
        self.debug = kwargs.pop("debug", False)
        restrict2d = kwargs.pop("restrict2d", None)
        continuation = {name: kwargs.pop(name) for name in CONTINUATION_PARAMETERS if name in kwargs}
        if kwargs:
            raise ValueError(f"unknown Blatter solver parameters: {', '.join(kwargs)}")

        mg_levels = PETSc.Options(self.prefix).getInt("pc_mg_levels", 1)
        checkcompatibility(Mz, mg_levels, coarsening_factor, option=f"-{self.prefix}pc_mg_levels")
        self.mg_levels = mg_levels

        self.dm = solverdm(grid, Mz, coarsening_factor, prefix=self.prefix)
        self.hierarchy = MultigridParameterHierarchy(
            grid, min_thickness=self.min_thickness, restrict2d=restrict2d, debug=self.debug
        )
        self.hierarchy.attach(self.dm)

        if assembly is None:
            assembly = ColumnShearAssembly(
                ice_density=self.ice_density, standard_gravity=self.standard_gravity
            )
        self.assembly = assembly

        self.x = self.dm.createGlobalVec()
        self.x.set(0.0)
        self.solver = SNESSolver(self.dm, grid, assembly, prefix=self.prefix)
        self.continuation = ContinuationSolver(
            self.solver, comm=grid.comm, verbosity=self.verbosity, **continuation
        )

        self.sigma = np.linspace(0.0, 1.0, Mz)
        self.sigma[-1] = 1.0
        self.eps_target = (self.schoof_velocity / self.schoof_length) ** 2

        shape = (grid.ym, grid.xm)
        self.u_sigma = np.zeros(shape + (Mz,))
        self.v_sigma = np.zeros(shape + (Mz,))
        self.basal = np.zeros(shape + (2,))
        self.velocity = np.zeros(shape + (2,))
        self.heating = np.zeros(shape)

    def _message(self, level, text):
        if level <= self.verbosity:
            PETSc.Sys.Print(text, comm=self.grid.comm)

    def init(self, restart=None):
        """Set the initial guess.  restart is a mapping holding 'uvel_sigma' and
        'vvel_sigma' (owned patch, shape (ym, xm, Mz)), e.g. the result of
        modelstate(); None means a zero guess."""
        if restart is None:
            self.x.set(0.0)
            self.u_sigma[:] = 0.0
            self.v_sigma[:] = 0.0
            return None
        if "uvel_sigma" not in restart or "vvel_sigma" not in restart:
            raise RuntimeError("uvel_sigma and vvel_sigma not found")
        self._message(3, "  Reading uvel_sigma and vvel_sigma...")
        shape = (self.grid.ym, self.grid.xm, self.Mz)
        u = np.asarray(restart["uvel_sigma"], dtype=float)
        v = np.asarray(restart["vvel_sigma"], dtype=float)
        if u.shape != shape or v.shape != shape:
            raise ValueError(f"restart velocity has wrong shape {u.shape}, {v.shape}; expected {shape}")
        self.x.setArray(np.stack([u, v], axis=-1).ravel())
        self.u_sigma = u.copy()
        self.v_sigma = v.copy()
        return None

    def update(self, inputs):
        """Solve the stress balance for inputs (an Inputs instance), starting from
        the current guess.  Returns the column-averaged velocity, shape (ym, xm,
        2).  Raises ContinuationError if the solve fails."""
        finest = self.hierarchy.finest()
        finest.parameters.build(
            inputs.basal_yield_stress,
            inputs.thickness,
            inputs.bed,
            inputs.sea_level,
            ice_density=self.ice_density,
            ocean_density=self.ocean_density,
            min_thickness=self.min_thickness,
        )
        hardness = inputs.ice_hardness if inputs.ice_hardness is not None else self.ice_hardness
        hardness = np.asarray(hardness, dtype=float)
        if hardness.ndim == 2:
            hardness = hardness[:, :, None]
        finest.sethardness(self.grid, hardness)

        if self.verbosity >= 3:
            ni, nb, ne = finest.parameters.countnodetypes()
            self._message(3, f"  node types: {ni} interior, {nb} boundary, {ne} exterior")

        self.continuation.solve(self.x, self.eps_target)
        self._postprocess(finest)
        return self.velocity.copy()

    def _postprocess(self, finest):
        thickness = finest.parameters.field("thickness")
        a = self.x.getArray(readonly=True).reshape(self.grid.ym, self.grid.xm, self.Mz, 2)
        self.u_sigma = np.array(a[:, :, :, 0])
        self.v_sigma = np.array(a[:, :, :, 1])
        self.basal = np.array(a[:, :, 0, :])

        # trapezoid rule in sigma; sigma spans [0, 1]
        ds = np.diff(self.sigma)[None, None, :, None]
        average = np.sum(0.5 * (a[:, :, 1:, :] + a[:, :, :-1, :]) * ds, axis=2)
        average[thickness <= 0.0] = 0.0
        self.velocity = average

        icy = (finest.parameters.nodetypes() != NODE_EXTERIOR) & (thickness > 0.0)
        beta = self.assembly.basaldrag(finest, self.grid)
        self.heating = np.where(icy, beta * np.sum(self.basal**2, axis=-1), 0.0)

    def velocity_u_sigma(self):
        return self.u_sigma.copy()

    def velocity_v_sigma(self):
        return self.v_sigma.copy()

    def basalvelocity(self):
        """Velocity at the base of the ice (sigma = 0), shape (ym, xm, 2)."""
        return self.basal.copy()

    def averagedvelocity(self):
        """Column-averaged velocity, shape (ym, xm, 2); zero where there is no
        ice."""
        return self.velocity.copy()

    def basalfrictionalheating(self):
        """Rate of heat production by basal friction, beta |u_b|^2 (W m-2), shape
        (ym, xm); zero at exterior nodes."""
        return self.heating.copy()

    def modelstate(self):
        """Return the fields needed to restart from the current solution."""
        return {"uvel_sigma": self.velocity_u_sigma(), "vvel_sigma": self.velocity_v_sigma()}

    def report(self, indent=2):
        """Print the grid, the sigma grid, and the multigrid levels set up so
        far."""
        indentstr = indent * " "
        self.grid.report(indent=indent)
        PETSc.Sys.Print(
            f"{indentstr}sigma grid: Mz = {self.Mz}, coarsening factor {self.coarsening_factor},"
            f" {self.mg_levels} multigrid level(s)",
            comm=self.grid.comm,
        )
        self.hierarchy.report(indent=indent)
        return None

    def destroy(self):
        self.solver.destroy()
        self.x.destroy()
        self.hierarchy.destroy()
        self.dm.destroy()
