'''
'''

from .codec import to_dense, to_sparse, from_sparse
from .kernelmachine import KernelMachine, SupportVector
