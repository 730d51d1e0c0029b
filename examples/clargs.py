des="""
Solves the first-order (Blatter-Pattyn) stress balance, in its vertical-shear
approximation, for an ice slab on an inclined bed, or, with -marine, for an ice
shelf-fed marine ice sheet whose bed descends below sea level.

The map-plane domain is the rectangle [-Lx,Lx] x [-Ly,Ly].  Ice thickness is
constant for the slab; with -marine it decreases toward the calving front at
x = Lx*(1-front), beyond which there is no ice.  Velocities are reported in
meters per year.

Solver behavior is controlled with PETSc options using the prefix -bp_, for
example -bp_snes_monitor, -bp_pc_type mg -bp_pc_mg_levels 3 (which needs
compatible -Mz and -C; try -Mz 9 -C 2), or -bp_snes_max_it 20.
"""

from argparse import ArgumentParser, RawTextHelpFormatter
parser = ArgumentParser(description=des, formatter_class=RawTextHelpFormatter)

parser.add_argument(
    "-C",
    type=int,
    default=2,
    metavar="C",
    help="vertical coarsening factor for multigrid [default=2]",
)
parser.add_argument(
    "-front",
    type=float,
    default=0.25,
    metavar="X",
    help="ice-free fraction of the domain if -marine [default=0.25]",
)
parser.add_argument(
    "-H0",
    type=float,
    default=1000.0,
    metavar="X",
    help="ice thickness, or maximum thickness if -marine, in meters [default=1000.0]",
)
parser.add_argument(
    "-Lx",
    type=float,
    default=50.0e3,
    metavar="X",
    help="half-width of the domain in x, in meters [default=50.0e3]",
)
parser.add_argument(
    "-Ly",
    type=float,
    default=10.0e3,
    metavar="X",
    help="half-width of the domain in y, in meters [default=10.0e3]",
)
parser.add_argument(
    "-marine",
    action="store_true",
    default=False,
    help="marine ice sheet with a calving front instead of a grounded slab",
)
parser.add_argument(
    "-mx",
    type=int,
    default=21,
    metavar="M",
    help="number of grid nodes in x [default=21]",
)
parser.add_argument(
    "-my",
    type=int,
    default=5,
    metavar="M",
    help="number of grid nodes in y [default=5]",
)
parser.add_argument(
    "-Mz",
    type=int,
    default=5,
    metavar="M",
    help="number of sigma levels [default=5]",
)
parser.add_argument(
    "-n",
    type=float,
    default=3.0,
    metavar="X",
    help="Glen flow law exponent [default=3.0]",
)
parser.add_argument(
    "-o",
    metavar="FILE",
    type=str,
    default="",
    help="save velocities and the restart state to a NumPy file (.npz)",
)
parser.add_argument(
    "-restart",
    metavar="FILE",
    type=str,
    default="",
    help="read the initial guess from a file written by -o (.npz)",
)
parser.add_argument(
    "-slope",
    type=float,
    default=1.0e-3,
    metavar="X",
    help="bed slope [default=1.0e-3]",
)
parser.add_argument(
    "-tauc",
    type=float,
    default=1.0e5,
    metavar="X",
    help="basal yield stress in Pa [default=1.0e5]",
)
parser.add_argument(
    "-v",
    type=int,
    default=2,
    metavar="V",
    help="verbosity level; 3 adds node type and restart reports [default=2]",
)
