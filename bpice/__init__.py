from .grid import GridTopology, NOT_PERIODIC, X_PERIODIC, Y_PERIODIC, XY_PERIODIC
from .nodetypes import NODE_INTERIOR, NODE_BOUNDARY, NODE_EXTERIOR, classify
from .parameters import ParameterField
from .hierarchy import MultigridParameterHierarchy, checkcompatibility
from .continuation import ContinuationSolver, ContinuationError, SolveResult
from .assembly import Assembly, ColumnShearAssembly
from .snes import SNESSolver
from .blatter import Blatter, Inputs
