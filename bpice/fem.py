import numpy as np

from .nodetypes import (
    elementcorners,
    grounding_line,
    marine_boundary_face,
    partially_submerged_face,
)


class Q1Quadrature:
    """Tensor-product n x n Gauss-Legendre quadrature on the reference square
    [0,1]^2, together with the values of the four Q1 shape functions at the
    quadrature points.  Weights sum to one."""

    def __init__(self, n):
        assert n >= 1
        p, w = np.polynomial.legendre.leggauss(n)
        p = 0.5 * (p + 1.0)
        w = 0.5 * w
        xi, eta = np.meshgrid(p, p, indexing="ij")
        self.n = n
        self.points = np.column_stack([xi.ravel(), eta.ravel()])
        self.weights = np.outer(w, w).ravel()
        self.chi = chi(self.points[:, 0], self.points[:, 1])

    def n_pts(self):
        return len(self.weights)

    def evaluate(self, nodal):
        """Interpolate nodal values (..., 4) to quadrature points (..., n_pts)."""
        return np.asarray(nodal, dtype=float) @ self.chi.T


def chi(xi, eta):
    """Q1 shape functions at (xi, eta), in element node order; returns an array
    of shape (len(xi), 4)."""
    xi, eta = np.atleast_1d(xi), np.atleast_1d(eta)
    return np.column_stack(
        [(1 - xi) * (1 - eta), xi * (1 - eta), xi * eta, (1 - xi) * eta]
    )


# 4-point Gaussian quadrature, and 100-point quadrature for grounding lines and
# partially submerged cliffs, where integrands are discontinuous
QUADRATURE4 = Q1Quadrature(2)
QUADRATURE100 = Q1Quadrature(10)


def basalquadrature(floatation):
    """Choose the quadrature for the basal face of an element from the
    floatation values at its four map-plane nodes.  groundedfraction() integrates
    with this choice."""
    if grounding_line(floatation):
        return QUADRATURE100
    return QUADRATURE4


def lateralquadrature(node_type, ice_bottom, z, sea_level):
    """Choose the quadrature for a lateral face (four nodes).  Returns None if
    the face is not a part of the marine boundary, in which case there is no
    ocean pressure term to integrate.

    ColumnShearAssembly has no lateral faces; an assembly which integrates
    ocean pressure on element faces selects its rule here."""
    if not marine_boundary_face(node_type, ice_bottom, sea_level):
        return None
    if partially_submerged_face(z, sea_level):
        return QUADRATURE100
    return QUADRATURE4


def groundedfraction(floatation):
    """Compute, for each element of the 2D array floatation, the fraction of its
    area which is grounded (floatation <= 0), using the cheap rule everywhere
    except in cells containing the grounding line."""
    F = np.stack(elementcorners(np.asarray(floatation, dtype=float)), axis=-1)
    fraction = np.empty(F.shape[:-1])
    for index in np.ndindex(fraction.shape):
        q = basalquadrature(F[index])
        fraction[index] = (q.evaluate(F[index]) <= 0.0) @ q.weights
    return fraction


def nodalaverage(elementvalues):
    """Average element values onto nodes, over the elements which each node
    belongs to.  Returns an array one larger in each dimension."""
    ne_j, ne_i = elementvalues.shape
    total = np.zeros((ne_j + 1, ne_i + 1))
    count = np.zeros((ne_j + 1, ne_i + 1))
    for sj, si in ((0, 0), (0, 1), (1, 1), (1, 0)):
        total[sj : sj + ne_j, si : si + ne_i] += elementvalues
        count[sj : sj + ne_j, si : si + ne_i] += 1.0
    return total / count
