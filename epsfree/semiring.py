"""
Semirings over pynini weights.

A Semiring bundles the operations that weighted algorithms need 
(plus, times, zero, one, is_not_zero) for one OpenFst weight type:
- 'tropical': plus = min, times = +, zero = inf, one = 0.
- 'log' / 'log64': plus = -log(exp(-a) + exp(-b)), times = +,
zero = inf, one = 0.
Probabilities are represented in the log semiring as negative log 
probabilities, so that plus adds probabilities and times multiplies 
them (see from_prob(), to_prob()).
ref. Mohri, M. (2002). Semiring frameworks and algorithms for 
shortest-distance problems. Journal of Automata, Languages 
and Combinatorics, 7(3), 321-350.
"""
import functools
import numpy as np
import pynini
from pynini import Weight

from epsfree import config

# Arc type -> weight type (see pynini.Fst arc_type).
arc_types = {'standard': 'tropical', 'log': 'log', 'log64': 'log64'}


class SemiringError(Exception):
    """ Missing or unsupported weight algebra. """


class Semiring():
    """
    Weight algebra of one pynini weight type. Weights can be given 
    as pynini Weights, numbers, or booleans (True = one, False = zero).
    """
    weight_types = ('tropical', 'log', 'log64')

    def __init__(self, weight_type='tropical'):
        weight_type = arc_types.get(weight_type, weight_type)
        if weight_type not in self.weight_types:
            raise SemiringError(f'Unsupported weight type: {weight_type}')
        self.weight_type = weight_type
        self.zero = Weight.zero(weight_type)
        self.one = Weight.one(weight_type)

    @classmethod
    def from_wfst(cls, wfst):
        """ Semiring of the weights on a machine. """
        if wfst is None:
            raise SemiringError('No machine to take weight type from.')
        weight_type = wfst.weight_type()
        if not weight_type:
            raise SemiringError('Machine has no weight type.')
        return cls(weight_type)

    def weight(self, value):
        """ Coerce value to a Weight of this semiring. """
        if value is True or value is None:
            return self.one
        if value is False:
            return self.zero
        if isinstance(value, Weight):
            if value.type() != self.weight_type:
                raise SemiringError(f'Weight of type {value.type()} '
                                    f'in {self.weight_type} semiring.')
            return value
        return Weight(self.weight_type, float(value))

    def plus(self, w1, w2):
        return pynini.plus(self.weight(w1), self.weight(w2))

    def times(self, w1, w2):
        return pynini.times(self.weight(w1), self.weight(w2))

    def sum(self, weights):
        """ plus-sum of weights (zero if empty). """
        return functools.reduce(self.plus, weights, self.zero)

    def product(self, weights):
        """ times-product of weights (one if empty). """
        return functools.reduce(self.times, weights, self.one)

    def is_zero(self, w):
        return self.weight(w) == self.zero

    def is_not_zero(self, w):
        return not self.is_zero(w)

    def approx_equal(self, w1, w2, delta=None):
        """ Equality of weight values up to delta. """
        if delta is None:
            delta = config.delta
        x = float(self.weight(w1))
        y = float(self.weight(w2))
        if x == y:  # Includes zero (inf).
            return True
        return bool(np.abs(x - y) <= delta)

    def from_prob(self, p):
        """ Weight for probability p (negative log). """
        if p == 0:
            return self.zero
        return Weight(self.weight_type, float(-np.log(p)))

    def to_prob(self, w):
        """ Probability for weight w. """
        return float(np.exp(-float(self.weight(w))))

    def __repr__(self):
        return f'Semiring({self.weight_type!r})'
