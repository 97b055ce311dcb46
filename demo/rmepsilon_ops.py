import sys

sys.path.append('..')
import pynini
from epsfree import config as epsconfig
from epsfree import *

# # # # # # # # # #
# Alphabet (+ epsilon, bos, eos)
config = {'sigma': ['a', 'b', 'c']}
epsconfig.init(config)
eps = epsconfig.epsilon

# Weighted machine with epsilon arcs and an epsilon cycle
# (log semiring, weights are negative log probabilities)
M = Wfst(epsconfig.symtable, arc_type='log')
for q in ['q0', 'q1', 'q2', 'q3', 'q4']:
    M.add_state(q)
M.set_initial('q0')
M.set_final('q4')
M.add_arc(src='q0', ilabel=eps, weight=0.5, dest='q1')
M.add_arc(src='q0', ilabel='a', weight=1.0, dest='q2')
M.add_arc(src='q1', ilabel='b', weight=0.3, dest='q3')
M.add_arc(src='q1', ilabel=eps, weight=1.5, dest='q2')
M.add_arc(src='q2', ilabel=eps, weight=2.0, dest='q1')  # epsilon cycle
M.add_arc(src='q3', ilabel='c', dest='q4')
M.add_arc(src='q2', ilabel=eps, weight=0.7, dest='q4')
M.print(acceptor=True, show_weight_one=True)
print(M.info())

# Epsilon closures
closure = EpsilonClosure(M)
for q in M.state_ids():
    cl = {M.state_label(r): float(w) for (r, w) in closure[q].items()}
    print(M.state_label(q), closure.is_cyclic(q), cl)

# Epsilon removal
R = M.rmepsilon()
R.print(acceptor=True, show_weight_one=True)
print(R.info())
print(R.is_epsilon_free())

# Same weighted language before and after
# (epsilon cycles truncated at max_len in M)
R_strings = R.strings(max_len=4)
for x, w in M.strings(max_len=8).items():
    print(x, float(w), float(R_strings[x]))

# Removal after regular operations
A = accep('a b', epsconfig.symtable)
B = accep('c', epsconfig.symtable)
N = concat(union(A, B), star(B))
print(N.num_epsilons())
N = rmepsilon(N)
N.print(acceptor=True)
# N.draw('fig/N.dot')
# dot -Tpdf fig/N.dot > fig/N.pdf

# Compare with pynini (state labels are lost there)
N2 = pynini.rmepsilon(concat(union(A, B), star(B)).to_fst())
print(N2.num_states(), N.num_states())
