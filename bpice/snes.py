from petsc4py import PETSc

from .continuation import SolveResult


class SNESSolver:
    """Adapter between the continuation method and a PETSc SNES working on a 3D
    solver DMDA.  Residual and Jacobian callbacks look up the parameters of the
    grid level they are called on (the DM may be a coarse multigrid level) and
    hand them to the assembly, together with the current regularization
    parameter."""

    def __init__(self, dm, grid, assembly, prefix="bp_"):
        self.dm = dm
        self.grid = grid
        self.assembly = assembly
        self.eps = None

        self.snes = PETSc.SNES().create(comm=dm.getComm())
        self.snes.setOptionsPrefix(prefix)
        self.snes.setDM(dm)
        self.f = dm.createGlobalVec()
        self.snes.setFunction(self._residual, self.f)
        self.J = dm.createMat()
        self.snes.setJacobian(self._jacobian, self.J)
        self.snes.setFromOptions()

    def _localsolution(self, dm, X):
        """Return the ghosted solution as an array (gym, gxm, Mz, 2)."""
        Xl = dm.getLocalVec()
        dm.globalToLocal(X, Xl)
        (_, _, _), (gzm, gxm, gym) = dm.getGhostCorners()
        x = Xl.getArray(readonly=True).reshape(gym, gxm, gzm, 2).copy()
        dm.restoreLocalVec(Xl)
        return x

    def _residual(self, snes, X, F):
        dm = snes.getDM()
        level = dm.getAppCtx()
        x = self._localsolution(dm, X)
        f = self.assembly.residual(level, self.grid, x, self.eps)
        F.setArray(f.ravel())

    def _jacobian(self, snes, X, J, P):
        dm = snes.getDM()
        level = dm.getAppCtx()
        x = self._localsolution(dm, X)
        P.zeroEntries()
        self.assembly.jacobian(level, self.grid, x, self.eps, P)
        P.assemble()
        if J != P:
            J.assemble()

    def maxiterations(self):
        """Maximum number of nonlinear iterations allowed per solve."""
        return self.snes.getTolerances()[3]

    def solve(self, x, eps):
        """Solve at regularization eps, using and updating the guess in x."""
        self.eps = eps
        self.snes.solve(None, x)
        return SolveResult(
            self.snes.getConvergedReason(),
            self.snes.getIterationNumber(),
            self.snes.getLinearSolveIterations(),
        )

    def linearreason(self):
        """Name of the converged reason of the last linear solve."""
        reason = self.snes.getKSP().getConvergedReason()
        for name, value in vars(PETSc.KSP.ConvergedReason).items():
            if name.isupper() and value == reason:
                return name
        return str(reason)

    def destroy(self):
        self.snes.destroy()
        self.J.destroy()
        self.f.destroy()
