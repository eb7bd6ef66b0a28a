'''
'''

from .kernels import KernelType, kernel
from .sigmoid import sigmoid_predict, MIN_PROB
from .coupling import pairwise_matrix, pairwise_coupling
