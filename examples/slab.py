# Solves the first-order ice stress balance for a grounded slab or a marine
# ice sheet with a calving front.  For more info run
#   python3 slab.py -h

from clargs import parser

args, passthroughoptions = parser.parse_known_args()
assert args.mx >= 2 and args.my >= 2, "at least two grid nodes in each direction"
assert args.Mz >= 2, "at least two sigma levels"
assert args.H0 > 0.0, "ice thickness has to be positive"
assert 0.0 < args.front < 1.0, "ice-free fraction has to be in (0,1)"

import numpy as np
import petsc4py

petsc4py.init(passthroughoptions)
from petsc4py import PETSc
from mpi4py import MPI

pprint = PETSc.Sys.Print  # parallel print
from bpice import Blatter, ColumnShearAssembly, GridTopology, Inputs

secpera = 31556926.0
sea_level = 0.0

grid = GridTopology(args.mx, args.my, args.Lx, args.Ly)
pprint(f"solving on {args.mx} x {args.my} x {args.Mz} grid for {'marine ice sheet' if args.marine else 'slab'} ...")

X, _ = grid.coordinates()
s = (X + args.Lx) / (2.0 * args.Lx)  # in [0,1] along the flow
if args.marine:
    bed = 200.0 - 600.0 * s
    thickness = args.H0 * np.sqrt(np.maximum(1.0 - s / (1.0 - args.front), 0.0))
else:
    bed = 1000.0 - args.slope * (X + args.Lx)
    thickness = np.full_like(X, args.H0)

assembly = ColumnShearAssembly(glen_exponent=args.n)
bp = Blatter(
    grid,
    Mz=args.Mz,
    coarsening_factor=args.C,
    assembly=assembly,
    verbosity=args.v,
)

if args.restart:
    pprint(f"reading initial guess from {args.restart} ...")
    bp.init(np.load(args.restart))
else:
    bp.init()

# hardness for n = 3, in Pa s^(1/3)
inputs = Inputs(thickness, bed, sea_level, args.tauc, ice_hardness=1.9e8)
velocity = bp.update(inputs)
bp.report()

speed = secpera * np.sqrt(np.sum(velocity**2, axis=-1))
comm = grid.comm.tompi4py()

umax = comm.allreduce(speed.max() if speed.size else 0.0, op=MPI.MAX)
basal = secpera * bp.basalvelocity()[:, :, 0]
ubmax = comm.allreduce(basal.max() if basal.size else 0.0, op=MPI.MAX)
pprint(f"max column-averaged speed {umax:.3f} m/yr, max basal u {ubmax:.3f} m/yr")

if args.o:
    if grid.comm.getSize() > 1:
        raise ValueError("option -o only valid in serial")
    pprint(f"writing velocities and restart state to {args.o} ...")
    np.savez(
        args.o,
        x=grid.x(),
        y=grid.y(),
        velocity=velocity,
        basal=bp.basalvelocity(),
        **bp.modelstate(),
    )
