from epsfree import config
from epsfree.semiring import Semiring, SemiringError
from epsfree.wfst import (Wfst, WfstError, accep, connect, ques, plus, star,
                          concatenate, concat, union)
from epsfree.rmepsilon import (EpsilonClosure, EpsilonCycleError,
                               remove_epsilon, rmepsilon)

__version__ = '0.1.0'
