import math
from collections import namedtuple

from petsc4py import PETSc

# states of the continuation loop, as recorded in ContinuationSolver.history
START = "start"
ACCEPTED = "accepted"
RESTARTED = "restarted"
REJECTED_BACKTRACK = "rejected-backtrack"
DONE = "done"
FAILED = "failed"

SolveResult = namedtuple("SolveResult", ["reason", "iterations", "linear_iterations"])
SolveResult.__doc__ = """Outcome of one nonlinear solve: PETSc SNES converged reason
(positive if converged), nonlinear and linear iteration counts."""

ContinuationResult = namedtuple(
    "ContinuationResult", ["steps", "lambda_", "eps", "iterations", "linear_iterations"]
)

# divergence the continuation method can recover from by taking a smaller step
RECOVERABLE = (
    PETSc.SNES.ConvergedReason.DIVERGED_LINE_SEARCH,
    PETSc.SNES.ConvergedReason.DIVERGED_MAX_IT,
)


def reasonname(reason):
    """Return the name of a SNES converged reason."""
    for name, value in vars(PETSc.SNES.ConvergedReason).items():
        if name.isupper() and value == reason:
            return name
    return str(reason)


class ContinuationError(RuntimeError):
    """Raised when parameter continuation fails; carries the step history."""

    def __init__(self, message, history=None):
        super().__init__(message)
        self.history = history if history is not None else []


class ContinuationSolver:
    r"""Parameter continuation for a nonlinear system which is too stiff to solve
    from a poor initial guess.

    The regularization of the system is controlled by lambda in
    [lambda_min, lambda_max] through

      eps(lambda) = max(10^(lambda * gamma), eps_target),   gamma = floor(log10(eps_target))

    so that eps(lambda_max) = eps_target.  The first attempt solves the target
    system directly.  If that fails in a recoverable way (line search failure or
    too many iterations) the method starts over from zero at lambda_min and walks
    lambda up.  Converged steps earn a longer next step,

      delta *= 1 + A F^2,   F = (max_it - its) / max_it

    (the step-length update of LOCA; Salinger et al. 2002), while failed steps
    roll back to the last accepted solution and halve the step.  Continuation
    fails if lambda drops below lambda_min, if the step cannot be reduced below
    delta_min, on any non-recoverable divergence, or after max_steps steps.

    The solver collaborator has to provide solve(x, eps) returning a SolveResult
    (it updates the Vec x in place) and maxiterations().  It may provide
    linearreason() for reports on linear solver failures."""

    def __init__(self, solver, comm=None, **kwargs):
        self.solver = solver
        self.comm = comm if comm is not None else PETSc.COMM_WORLD
        self.lambda_min = kwargs.pop("lambda_min", 0.75)
        self.lambda_max = kwargs.pop("lambda_max", 1.0)
        self.delta0 = kwargs.pop("delta0", 0.05)
        self.delta_min = kwargs.pop("delta_min", 0.01)
        self.delta_max = kwargs.pop("delta_max", 0.2)
        self.aggressiveness = kwargs.pop("aggressiveness", 1.0)
        self.max_steps = kwargs.pop("max_steps", 20)
        self.verbosity = kwargs.pop("verbosity", 2)
        if kwargs:
            raise ValueError(f"unknown continuation parameters: {', '.join(kwargs)}")
        assert 0.0 < self.lambda_min <= self.lambda_max
        assert 0.0 < self.delta_min <= self.delta0 <= self.delta_max
        assert self.aggressiveness >= 0.0
        self.history = []

    def _message(self, level, text):
        if level <= self.verbosity:
            PETSc.Sys.Print(text, comm=self.comm)

    def _record(self, step, state, lambda_, delta, eps, result=None):
        its, lits = (result.iterations, result.linear_iterations) if result else (0, 0)
        self.history.append(
            {
                "step": step,
                "state": state,
                "lambda": lambda_,
                "delta": delta,
                "eps": eps,
                "iterations": its,
                "linear_iterations": lits,
            }
        )

    def regularization(self, lambda_, eps_target):
        """Effective regularization parameter at lambda."""
        gamma = math.floor(math.log10(eps_target))
        return max(10.0 ** (lambda_ * gamma), eps_target)

    def _fail(self, message, step=None, lambda_=None, delta=None):
        self._record(step, FAILED, lambda_, delta, None)
        raise ContinuationError(f"Blatter solver: {message}", self.history)

    def solve(self, x, eps_target):
        """Solve the target system, at eps_target, starting from the guess in x.
        On success x holds the solution and a ContinuationResult is returned;
        otherwise ContinuationError is raised.  No partial result is produced."""
        if eps_target <= 0.0:
            raise ValueError(f"target regularization has to be positive, got {eps_target}")
        self.history = []

        # solve the desired (not over-regularized) problem first
        lambda_, delta = self.lambda_max, self.delta0
        self._record(0, START, lambda_, delta, self.regularization(lambda_, eps_target))

        snes_total_it, ksp_total_it = 0, 0
        snes_max_it = self.solver.maxiterations()

        # last accepted solution; we may need to revert to it
        x_old = x.duplicate()
        x.copy(x_old)

        try:
            for N in range(self.max_steps + 1):
                eps = self.regularization(lambda_, eps_target)
                if N > 0:
                    self._message(2, f"Blatter solver: step {N} with lambda = {lambda_:f}, eps = {eps:e}")
                else:
                    self._message(2, f"Blatter solver: start with eps = {eps:e}")

                result = self.solver.solve(x, eps)
                if N > 0:
                    self._message(
                        2,
                        f"Blatter solver: {reasonname(result.reason)} step {N} with lambda = {lambda_:f},"
                        f" eps = {eps:e}: SNES: {result.iterations}, KSP: {result.linear_iterations}",
                    )
                snes_total_it += result.iterations
                ksp_total_it += result.linear_iterations

                if result.reason > 0:
                    if eps <= eps_target:
                        # converged while solving the target problem
                        self._record(N, DONE, lambda_, delta, eps, result)
                        self._message(2, f"Blatter solver: done. SNES: {snes_total_it}, KSP: {ksp_total_it}")
                        return ContinuationResult(N, lambda_, eps, snes_total_it, ksp_total_it)

                    x.copy(x_old)

                    if N > 1:
                        F = (snes_max_it - result.iterations) / float(snes_max_it)
                        delta *= 1.0 + self.aggressiveness * F * F
                    delta = min(delta, self.delta_max)
                    # do not step past lambda_max
                    if lambda_ + delta > self.lambda_max:
                        delta = self.lambda_max - lambda_

                    self._record(N, ACCEPTED, lambda_, delta, eps, result)
                    self._message(2, f"  Using delta = {delta:f}")
                    lambda_ += delta

                elif result.reason in RECOVERABLE:
                    if N == 0:
                        lambda_, delta = self.lambda_min, self.delta0
                        x.set(0.0)
                        x_old.set(0.0)
                        self._record(N, RESTARTED, lambda_, delta, eps, result)
                        self._message(2, f"  Starting parameter continuation with lambda = {lambda_:f}")
                        continue

                    x_old.copy(x)
                    lambda_ -= delta
                    if lambda_ < self.lambda_min - 1e-12:
                        self._fail("Parameter continuation failed", N, lambda_, delta)
                    if abs(delta - self.delta_min) < 1e-6:
                        self._fail("cannot reduce the continuation step", N, lambda_, delta)

                    delta = min(max(0.5 * delta, self.delta_min), self.delta_max)
                    # the old delta satisfied lambda + delta <= lambda_max, so
                    # this one does too
                    lambda_ += delta
                    self._record(N, REJECTED_BACKTRACK, lambda_, delta, eps, result)
                    self._message(2, f"  Back-tracking to lambda = {lambda_:f} using delta = {delta:f}")

                else:
                    if result.reason == PETSc.SNES.ConvergedReason.DIVERGED_LINEAR_SOLVE:
                        linearreason = getattr(self.solver, "linearreason", None)
                        if linearreason is not None:
                            self._message(2, f"  Linear solver: {linearreason()}")
                    self._fail(f"solver failed ({reasonname(result.reason)})", N, lambda_, delta)

            self._fail(f"failed after {self.max_steps} parameter continuation steps", self.max_steps, lambda_, delta)
        finally:
            x_old.destroy()
