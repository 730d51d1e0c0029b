import numpy as np
from petsc4py import PETSc

from .fem import groundedfraction, nodalaverage
from .nodetypes import NODE_EXTERIOR
from .parameters import BED, FLOATATION, NODE_TYPE, TAUC, THICKNESS

SECPERA = 31556926.0  # seconds per year


class Assembly:
    """Residual and Jacobian evaluation for one multigrid level.

    Both methods receive the LevelData of the level (parameters, hardness), the
    map-plane grid, the ghosted local solution x with shape (gym, gxm, Mz, 2) and
    the current regularization parameter eps.  residual() returns an array of
    shape (ym, xm, Mz, 2) over owned nodes; jacobian() inserts entries into the
    level's matrix using local (ghosted) indices."""

    def residual(self, level, grid, x, eps):
        raise NotImplementedError

    def jacobian(self, level, grid, x, eps, J):
        raise NotImplementedError

    def basaldrag(self, level, grid):
        """Linear basal drag coefficient at owned nodes, shape (ym, xm)."""
        raise NotImplementedError


def surfacegradient(grid, surface):
    """Centered-difference gradient at owned nodes of the ghosted 2D array
    surface.  Differences become one-sided where the ghosted patch ends, i.e. at
    a non-periodic domain edge."""
    sj, si = grid.ownedslice(stencil_width=1)
    gym, gxm = surface.shape
    i = np.arange(gxm)[si]
    j = np.arange(gym)[sj]
    ip, im = np.minimum(i + 1, gxm - 1), np.maximum(i - 1, 0)
    jp, jm = np.minimum(j + 1, gym - 1), np.maximum(j - 1, 0)
    s_x = (surface[sj][:, ip] - surface[sj][:, im]) / ((ip - im) * grid.dx)
    s_y = (surface[jp][:, si] - surface[jm][:, si]) / ((jp - jm)[:, None] * grid.dy)
    return s_x, s_y


class ColumnShearAssembly(Assembly):
    r"""Vertical-shear approximation of the first-order stress balance.  Each
    column solves

      d/dz (eta du/dz) = rho g grad(s),

    with a stress-free surface, linear basal drag eta du/dz = beta u at the base,
    and the regularized Glen-law viscosity

      eta = B/2 (eps + 1/4 |du/dz|^2)^((1 - n) / (2 n)).

    The vertical is discretized with linear elements on the sigma grid (midpoint
    rule in each element).  The drag coefficient is tauc / u_threshold on the
    grounded part of the base and beta_floating elsewhere; the grounded area
    fraction of the elements around a node is computed with the fine quadrature
    rule in cells containing the grounding line.  Rows of ice-free (exterior)
    nodes are identity rows, so u = v = 0 there."""

    def __init__(self, **kwargs):
        self.glen_exponent = kwargs.pop("glen_exponent", 3.0)
        self.u_threshold = kwargs.pop("u_threshold", 100.0 / SECPERA)
        # weak drag keeping floating columns well posed
        self.beta_floating = kwargs.pop("beta_floating", 1e6)
        self.ice_density = kwargs.pop("ice_density", 910.0)
        self.standard_gravity = kwargs.pop("standard_gravity", 9.81)
        if kwargs:
            raise ValueError(f"unknown assembly parameters: {', '.join(kwargs)}")
        if self.glen_exponent < 1.0:
            raise ValueError(f"Glen exponent has to be at least 1, got {self.glen_exponent}")

    def _columns(self, level, grid, x):
        """Gather owned-column data: solution, thickness, spacing, active mask,
        driving stress, drag coefficient, and half-level hardness."""
        sj, si = grid.ownedslice(stencil_width=1)
        P = level.parameters.ghosted()
        w = x[sj, si]
        H = P[sj, si, THICKNESS]
        node_type = np.rint(P[sj, si, NODE_TYPE])
        active = (node_type != NODE_EXTERIOR) & (H > 0.0)
        dz = np.where(active, H, 1.0) / (level.Mz - 1.0)

        s_x, s_y = surfacegradient(grid, P[:, :, BED] + P[:, :, THICKNESS])
        driving = self.ice_density * self.standard_gravity * np.stack([s_x, s_y], axis=-1)

        beta = self.basaldrag(level, grid)

        B = level.hardnessarray(grid)
        Bh = 0.5 * (B[:, :, 1:] + B[:, :, :-1])
        return w, active, dz, driving, beta, Bh

    def basaldrag(self, level, grid):
        sj, si = grid.ownedslice(stencil_width=1)
        P = level.parameters.ghosted()
        fraction = nodalaverage(groundedfraction(P[:, :, FLOATATION]))[sj, si]
        return fraction * P[sj, si, TAUC] / self.u_threshold + (1.0 - fraction) * self.beta_floating

    def _viscosity(self, Bh, d, eps):
        """Return eta and its derivative factor c (d eta / d d = c d)."""
        p = (1.0 - self.glen_exponent) / (2.0 * self.glen_exponent)
        D = eps + 0.25 * np.sum(d * d, axis=-1)
        eta = 0.5 * Bh * D**p
        c = 0.25 * Bh * p * D ** (p - 1.0)
        return eta, c

    def residual(self, level, grid, x, eps):
        w, active, dz, driving, beta, Bh = self._columns(level, grid, x)
        Mz = level.Mz

        d = np.diff(w, axis=2) / dz[:, :, None, None]
        eta, _ = self._viscosity(Bh, d, eps)
        q = eta[..., None] * d  # flux through half-levels

        V = np.ones(Mz)
        V[0] = V[-1] = 0.5
        R = driving[:, :, None, :] * (V[None, None, :] * dz[:, :, None])[..., None]
        R[:, :, 1:, :] += q
        R[:, :, :-1, :] -= q
        R[:, :, 0, :] += beta[:, :, None] * w[:, :, 0, :]
        return np.where(active[:, :, None, None], R, w)

    def jacobian(self, level, grid, x, eps, J):
        w, active, dz, _, beta, Bh = self._columns(level, grid, x)
        Mz = level.Mz
        ym, xm = active.shape
        (gxs, gys), (gxm, _) = grid.ghostcorners(stencil_width=1)

        d = np.diff(w, axis=2) / dz[:, :, None, None]
        eta, c = self._viscosity(Bh, d, eps)
        G = eta[..., None, None] * np.eye(2) + c[..., None, None] * d[..., :, None] * d[..., None, :]
        G /= dz[:, :, None, None, None]

        k = np.arange(Mz - 1)
        offsets = np.arange(2 * Mz, dtype=PETSc.IntType)
        for j in range(ym):
            for i in range(xm):
                jj, ii = grid.ys - gys + j, grid.xs - gxs + i
                rows = offsets + 2 * Mz * (jj * gxm + ii)
                if not active[j, i]:
                    J.setValuesLocal(rows, rows, np.eye(2 * Mz))
                    continue
                A = np.zeros((Mz, 2, Mz, 2))
                g = G[j, i]
                A[k, :, k, :] += g
                A[k + 1, :, k + 1, :] += g
                A[k, :, k + 1, :] -= g
                A[k + 1, :, k, :] -= g
                A[0, :, 0, :] += beta[j, i] * np.eye(2)
                J.setValuesLocal(rows, rows, A.reshape(2 * Mz, 2 * Mz))
