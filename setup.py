from setuptools import setup

setup(
    name='bpice',
    version='0.1',
    description='Blatter-Pattyn ice stress balance with parameter continuation',
    long_description='First-order ice stress balance on a sigma grid: node classification, '
    'semi-coarsened multigrid parameter hierarchy, and parameter continuation.',
    packages=['bpice'],
    install_requires=['numpy', 'petsc4py', 'mpi4py'],
    extras_require={'test': ['pytest', 'mpi-pytest']},
    zip_safe=False,
)
