import numpy as np

# node classification labels
NODE_INTERIOR = 0
NODE_BOUNDARY = 1
NODE_EXTERIOR = 2

# nodes of a hexahedral element: the lower four (map-plane order
# (0,0), (1,0), (1,1), (0,1)) first, then the upper four
INCIDENT_NODES = (
    (0, 1, 5, 4),  # face 0: j side
    (1, 2, 6, 5),  # face 1: i+1 side
    (2, 3, 7, 6),  # face 2: j+1 side
    (3, 0, 4, 7),  # face 3: i side
    (0, 1, 2, 3),  # bottom
    (4, 5, 6, 7),  # top
)
N_LATERAL_FACES = 4


def elementcorners(a):
    """Return the four corner arrays of all map-plane elements of a 2D array a,
    indexed [j, i], in element node order.  Element (j, i) has its lower-left
    corner at node (j, i), so there are (nj - 1) x (ni - 1) elements."""
    return (a[:-1, :-1], a[:-1, 1:], a[1:, 1:], a[1:, :-1])


def icyelements(thickness, min_thickness):
    """An element contains ice if the thickness at all four of its nodes equals
    or exceeds min_thickness."""
    c0, c1, c2, c3 = elementcorners(np.asarray(thickness))
    return (
        (c0 >= min_thickness)
        & (c1 >= min_thickness)
        & (c2 >= min_thickness)
        & (c3 >= min_thickness)
    )


def icycount(thickness, min_thickness):
    """Count, for every node of the 2D array thickness, the icy elements it
    belongs to.  Elements which would need nodes outside the array are absent,
    so nodes on the array rim touch fewer than four elements."""
    thickness = np.asarray(thickness)
    icy = icyelements(thickness, min_thickness).astype(int)
    count = np.zeros(thickness.shape, dtype=int)
    count[:-1, :-1] += icy
    count[:-1, 1:] += icy
    count[1:, 1:] += icy
    count[1:, :-1] += icy
    return count


def classify(thickness, min_thickness):
    """Compute node types from a (ghosted) thickness array.

    A node is *interior* if all four elements it belongs to contain ice, it is
    *exterior* if it belongs to no icy element, and it is a *boundary* node
    otherwise.  Labels on the rim of a ghosted array are not meaningful; only
    nodes with all their elements inside the array (in particular all owned nodes
    when the ghost width is at least 1) are classified correctly.  At a
    non-periodic domain edge the missing elements simply do not count."""
    count = icycount(thickness, min_thickness)
    result = np.full(count.shape, NODE_BOUNDARY, dtype=int)
    result[count == 4] = NODE_INTERIOR
    result[count == 0] = NODE_EXTERIOR
    return result


def exterior_element(node_type):
    """Return true if an element does not contain ice, i.e. at least one of its
    four map-plane nodes is exterior.  Only the first four entries are used, so
    8-node element arrays are accepted."""
    node_type = np.asarray(node_type)[..., :4]
    return np.any(node_type == NODE_EXTERIOR, axis=-1)


def grounding_line(floatation):
    """Return true if a map-plane cell contains the grounding line: among its
    four nodes at least one is grounded (floatation <= 0) and at least one is
    floating (floatation > 0).  Only the first four entries (the lower nodes of a
    hexahedral element) are used.  Works along the last axis of an array of
    cells."""
    F = np.asarray(floatation, dtype=float)[..., :4]
    grounded = np.any(F <= 0.0, axis=-1)
    floating = np.any(F > 0.0, axis=-1)
    return grounded & floating


def partially_submerged_face(z, sea_level):
    """Return true if some nodes of a vertical face are above sea level and
    others are not.  Arguments hold the four face nodes."""
    z = np.asarray(z, dtype=float)
    sea_level = np.asarray(sea_level, dtype=float)
    above = np.any(z > sea_level, axis=-1)
    below = np.any(z <= sea_level, axis=-1)
    return above & below


def marine_boundary_face(node_type, ice_bottom, sea_level):
    """Return true if a vertical face is a part of the marine ice boundary, i.e.
    of a partially submerged cliff: all four face nodes are boundary nodes and
    the ice bottom is below sea level at one of them, at least."""
    node_type = np.asarray(node_type)
    ice_bottom = np.asarray(ice_bottom, dtype=float)
    sea_level = np.asarray(sea_level, dtype=float)
    boundary = np.all(node_type == NODE_BOUNDARY, axis=-1)
    submerged = np.any(ice_bottom < sea_level, axis=-1)
    return boundary & submerged


def facenodes(face, values):
    """Pick the four nodes of face (0 to 5) out of an 8-node element array."""
    return np.asarray(values)[..., list(INCIDENT_NODES[face])]


def checknodetypes(node_type):
    """Debugging check that every label is one of the three node types."""
    valid = np.isin(node_type, (NODE_INTERIOR, NODE_BOUNDARY, NODE_EXTERIOR))
    return bool(np.all(valid))
