"""
Epsilon removal for weighted machines.

The epsilon closure of a state q maps each state r reachable from q
by a non-empty path of epsilon:epsilon arcs to the plus-sum of the
weights of all such paths. Removal copies every state and every
non-epsilon arc, then gives each state the final weights and
outgoing non-epsilon arcs of the states in its closure, weighted by
the closure weights. The result is connected and arc-sorted.
ref. Mohri, M. (2002). Generic epsilon-removal and input
epsilon-normalization algorithms for weighted transducers.
International Journal of Foundations of Computer Science,
13(1), 129-143.
"""
from collections import deque

from epsfree import config
from epsfree.semiring import Semiring
from epsfree.wfst import Wfst, WfstError


class EpsilonCycleError(WfstError):
    """ Epsilon closure does not converge on an epsilon cycle. """


class EpsilonClosure():
    """
    Weighted epsilon closures of the states of a machine, computed
    lazily on first request and cached for the lifetime of this
    object. Closures of states from which no epsilon cycle can be
    reached are assembled from the closures of their epsilon
    successors; closures of states on epsilon cycles are computed
    by relaxation until no weight changes by more than delta.
    """

    def __init__(self,
                 wfst,
                 semiring=None,
                 ieps=None,
                 oeps=None,
                 delta=None,
                 max_iter=None):
        if semiring is None:
            semiring = Semiring.from_wfst(wfst)
        if ieps is None or oeps is None:
            ieps, oeps = wfst.epsilon_ids()
        self.wfst = wfst
        self.semiring = semiring
        self.ieps = ieps
        self.oeps = oeps
        self.delta = config.delta if delta is None else delta
        self.max_iter = config.max_iter if max_iter is None else max_iter
        n = wfst.num_states()
        self._eps_arcs = [None] * n  # State id -> [(dest, weight)].
        self._closure = [None] * n  # State id -> {dest: weight}.
        self._cyclic = set()  # Ids of states on epsilon cycles.

    def epsilon_arcs(self, q):
        """ (dest, weight) pairs of epsilon:epsilon arcs out of q. """
        arcs = self._eps_arcs[q]
        if arcs is None:
            fst = self.wfst.fst
            n = fst.num_states()
            arcs = []
            for t in fst.arcs(q):
                if not 0 <= t.nextstate < n:
                    raise WfstError(f'Arc from state {q} to '
                                    f'non-existent state {t.nextstate}.')
                if t.ilabel == self.ieps and t.olabel == self.oeps:
                    arcs.append((t.nextstate, t.weight))
            self._eps_arcs[q] = arcs
        return arcs

    def is_computed(self, q):
        return self._closure[q] is not None

    def is_cyclic(self, q):
        """ Check whether q lies on an epsilon cycle. """
        self.closure(q)
        return q in self._cyclic

    def closure(self, q):
        """
        Epsilon closure of state q as dictionary
        {state id: weight}.
        """
        if self._closure[q] is not None:
            return self._closure[q]

        # Iterative depth-first traversal of epsilon arcs;
        # a state is finished after all of its successors.
        stack = [(q, iter(self.epsilon_arcs(q)))]
        on_stack = {q: 0}  # State id -> stack position.
        while stack:
            src, arc_iter = stack[-1]
            for (dest, _) in arc_iter:
                if self._closure[dest] is not None:
                    continue
                if dest in on_stack:
                    # Every state from dest to src is on a cycle.
                    for (r, _) in stack[on_stack[dest]:]:
                        self._cyclic.add(r)
                    continue
                on_stack[dest] = len(stack)
                stack.append((dest, iter(self.epsilon_arcs(dest))))
                break
            else:
                stack.pop()
                del on_stack[src]
                if src in self._cyclic:
                    config.logger.debug(f'State {src} is on '
                                        f'an epsilon cycle.')
                    self._closure[src] = self._relax(src)
                else:
                    self._closure[src] = self._compose(src)
                    # Cycles through finished states.
                    if src in self._closure[src]:
                        self._cyclic.add(src)
        return self._closure[q]

    __getitem__ = closure

    def path_weight(self, q, r):
        """
        Weight of epsilon paths from q to r,
        or None if there are none.
        """
        return self.closure(q).get(r)

    def _add(self, cl, r, weight):
        """ plus-combine weight into entry for r. """
        if r in cl:
            cl[r] = self.semiring.plus(cl[r], weight)
        else:
            cl[r] = weight

    def _compose(self, q):
        """
        Closure of q from the finished closures of its
        epsilon successors.
        """
        times = self.semiring.times
        cl = {}
        for (dest, w) in self.epsilon_arcs(q):
            for r, v in self._closure[dest].items():
                self._add(cl, r, times(w, v))
            self._add(cl, dest, w)
        return cl

    def _relax(self, q):
        """
        Closure of q by single-source shortest distance
        over epsilon arcs (Mohri 2002, generic algorithm).
        """
        semiring = self.semiring
        cl = {}
        residual = {}  # Weight added to entry since last visit.
        queue = deque()
        enqueued = set()
        for (dest, w) in self.epsilon_arcs(q):
            self._add(cl, dest, w)
            self._add(residual, dest, w)
            if dest not in enqueued:
                queue.append(dest)
                enqueued.add(dest)

        n = 0
        while queue:
            n += 1
            if n > self.max_iter:
                raise EpsilonCycleError( \
                    f'Epsilon closure of state {q} did not converge '
                    f'after {self.max_iter} iterations.')
            r = queue.popleft()
            enqueued.discard(r)
            R = residual.pop(r)
            for (dest, w) in self.epsilon_arcs(r):
                v = semiring.times(R, w)
                old = cl.get(dest)
                new = v if old is None else semiring.plus(old, v)
                if old is not None and \
                    semiring.approx_equal(old, new, self.delta):
                    continue
                cl[dest] = new
                self._add(residual, dest, v)
                if dest not in enqueued:
                    queue.append(dest)
                    enqueued.add(dest)
        return cl


def remove_epsilon(wfst_in, semiring=None, delta=None, max_iter=None):
    """
    Equivalent machine without epsilon:epsilon arcs; arcs with
    epsilon on one side only are kept. State labels are preserved.
    Raises SemiringError if the weight algebra cannot be determined,
    WfstError if a symbol table lacks epsilon, there is no initial
    state, or an arc leads outside the machine, and EpsilonCycleError
    if an epsilon cycle does not converge.
    [nondestructive]
    """
    if semiring is None:
        semiring = Semiring.from_wfst(wfst_in)
    ieps, oeps = wfst_in.epsilon_ids()
    q0 = wfst_in.initial_id()
    if q0 < 0:
        raise WfstError('Machine has no initial state.')
    config.logger.debug(f'rmepsilon input: {wfst_in.info()}')

    fst = wfst_in.fst
    closure = EpsilonClosure( \
        wfst_in, semiring, ieps, oeps, delta, max_iter)

    wfst = Wfst( \
        wfst_in.input_symbols().copy(),
        wfst_in.output_symbols().copy(),
        wfst_in.arc_type())

    # State shells with original labels and final weights.
    old2new = {}
    new2old = {}
    for q in wfst_in.state_ids():
        q_new = wfst.add_state(wfst_in.state_label(q))
        wfst.set_final(q_new, wfst_in.final(q))
        old2new[q] = q_new
        new2old[q_new] = q
    wfst.set_initial(old2new[q0])

    # Non-epsilon arcs; trigger closures.
    for q in wfst_in.state_ids():
        for t in _non_epsilon_arcs(fst, q, ieps, oeps):
            wfst.add_arc(old2new[q], t.ilabel, t.olabel, t.weight,
                         old2new[t.nextstate])
        closure.closure(q)

    # Final weights and arcs reached through epsilon paths.
    for q_new in list(wfst.state_ids()):
        q = new2old[q_new]
        for r, w in closure[q].items():
            wfinal = fst.final(r)
            if semiring.is_not_zero(wfinal):
                wfst.set_final(q_new, semiring.plus( \
                    wfst.final(q_new), semiring.times(w, wfinal)))
            for t in _non_epsilon_arcs(fst, r, ieps, oeps):
                wfst.add_arc(q_new, t.ilabel, t.olabel,
                             semiring.times(w, t.weight),
                             old2new[t.nextstate])

    wfst = wfst.connect()
    wfst.arcsort('ilabel')
    config.logger.debug(f'rmepsilon output: {wfst.info()}')
    return wfst


rmepsilon = remove_epsilon  # Alias.


def _non_epsilon_arcs(fst, q, ieps, oeps):
    """ Arcs out of q that are not epsilon:epsilon. """
    n = fst.num_states()
    for t in fst.arcs(q):
        if not 0 <= t.nextstate < n:
            raise WfstError(f'Arc from state {q} to '
                            f'non-existent state {t.nextstate}.')
        if t.ilabel == ieps and t.olabel == oeps:
            continue
        yield t
