# Weighted finite-state acceptors/transducers with epsilon removal.
import os, re
import pynini
from pynini import (Fst, Arc, Weight, \
    SymbolTable, SymbolTableView)
from graphviz import Source

from epsfree import config
from epsfree.semiring import Semiring


class WfstError(Exception):
    """ Malformed machine or invalid argument to a machine operation. """


class Wfst():
    """
    Weighted machine over pynini.Fst whose states carry hashable
    labels (strings, tuples, ints) alongside their ids. Operations
    that rebuild the machine (connect, rmepsilon, the regular
    constructors) keep the labels of surviving states and copy the
    input and output symbol tables.
    Arc types are those of pynini: "standard" (tropical weights),
    "log" and "log64".
    """

    def __init__(self, isymbols=None, osymbols=None, arc_type='standard'):
        # Symbol tables.
        if isymbols is None:
            isymbols, _ = config.make_symtable([])
        if not isinstance(isymbols, (SymbolTable, SymbolTableView)):
            isymbols, _ = config.make_symtable(isymbols)
        if osymbols is None:
            osymbols = isymbols
        if not isinstance(osymbols, (SymbolTable, SymbolTableView)):
            osymbols, _ = config.make_symtable(osymbols)
        self.fst = fst = Fst(arc_type)  # Wrapped Fst.
        fst.set_input_symbols(isymbols)  # Arc input symbols.
        fst.set_output_symbols(osymbols)  # Arc output symbols.
        self._state2label = {}  # State id -> state label.
        self._label2state = {}  # State label -> state id.
        # note: state id <-> state label assumed to be one-to-one.

    def info(self):
        """
        Number of states and arcs, weight type.
        """
        nstate = self.num_states()
        nfinal = len(set(self.final_ids()))
        narc = self.num_arcs()
        weight_type = self.weight_type()
        return f'{nstate} states ({nfinal} final) | {narc} arcs | {weight_type} weights'

    # Input/output labels (most delegate to pynini.Fst).

    def input_symbols(self):
        """ Get input symbol table. """
        return self.fst.input_symbols()

    def output_symbols(self):
        """ Get output symbol table. """
        return self.fst.output_symbols()

    def epsilon_ids(self):
        """
        Ids of the epsilon symbol in the input and output
        symbol tables.
        """
        ids = []
        for side, symbols in (('input', self.input_symbols()),
                              ('output', self.output_symbols())):
            if symbols is None or not symbols.member(config.epsilon):
                raise WfstError(f'No epsilon ({config.epsilon}) in '
                                f'{side} symbol table.')
            ids.append(symbols.find(config.epsilon))
        return tuple(ids)

    # States.

    def state_label(self, q):
        """ State label from id. """
        if not isinstance(q, int):
            return q
        return self._state2label[q]

    def state_id(self, q):
        """ State id from label. """
        if isinstance(q, int):
            return q
        return self._label2state[q]

    def set_state_label(self, q, label):
        """ Update label of state q. """
        # Enforce one-to-one state labeling.
        if label in self._label2state:
            raise WfstError(f'Cannot set label of state {q} to {label} '
                            f'(label already used).')
        del self._label2state[self._state2label[q]]
        self._state2label[q] = label
        self._label2state[label] = q
        return self

    def add_state(self, label=None, initial=False, start=False, final=False):
        """ Add new state, optionally specifying its label. """
        # Enforce one-to-one state labeling.
        if label in self._label2state:
            if config.verbose:
                config.logger.info(f'State with label {label} already '
                                   f'exists (returning it).')
            return self._label2state[label]
        # Add new state.
        q = self.fst.add_state()
        # State id self-labeling by default.
        if label is None:
            label = q
        if config.verbose and isinstance(label, int) and label != q:
            config.logger.warning(f'Labeling state {q} with '
                                  f'integer other than {q}.')
        # State <-> label dicts.
        self._state2label[q] = label
        self._label2state[label] = q
        # Initial and final state properties.
        if initial or start:
            self.set_initial(q)
        if final:
            self.set_final(q, final)
        return q

    def states(self, label=True):
        """ Iterator over state labels or ids. """
        fst = self.fst
        if not label:
            return fst.states()
        return map(lambda q: self.state_label(q), fst.states())

    def state_ids(self):
        """ Iterator over state ids. """
        return self.states(label=False)

    def num_states(self):
        """ Number of states in this machine. """
        return self.fst.num_states()

    def set_initial(self, q):
        """ Set initial state by id or label. """
        q = self.state_id(q)
        self.fst.set_start(q)
        return self

    def initial(self, label=True):
        """ Initial state label (or id). """
        q0 = self.fst.start()
        if not label or q0 < 0:
            return q0
        return self.state_label(q0)

    def initial_id(self):
        """ Id of initial state (negative if none). """
        return self.initial(label=False)

    def set_final(self, q, weight=True):
        """
        Set final weight of state by id or label.
        note: default weight is one, not zero.
        """
        q = self.state_id(q)
        weight = Semiring(self.weight_type()).weight(weight)
        self.fst.set_final(q, weight)
        return self

    def final(self, q):
        """ Final weight of state by id or label. """
        q = self.state_id(q)
        return self.fst.final(q)

    final_weight = final  # Alias.

    def finals(self, label=True):
        """
        Iterator over states with non-zero final weights.
        """
        fst = self.fst
        zero = Weight.zero(fst.weight_type())
        state_iter = fst.states()
        state_iter = filter(lambda q: fst.final(q) != zero, state_iter)
        if label:
            state_iter = map(lambda q: self.state_label(q), state_iter)
        return state_iter

    def final_ids(self):
        """
        Iterator over ids of states with non-zero final weights.
        """
        return self.finals(label=False)

    def accessible(self, forward=True):
        """
        Ids of states accessible from initial state (forward)
        -or- coaccessible from final states (backward),
        in breadth-first order.
        """
        fst = self.fst

        states = []
        if forward:
            # Initial state id; forward arcs.
            q0 = fst.start()
            Q = set([q0]) if q0 >= 0 else set()
            states += Q
            T = {}
            for src in fst.states():
                T[src] = set()
                for t in fst.arcs(src):
                    T[src].add(t.nextstate)
        else:
            # Final state ids; backward arcs.
            Q = set(self.final_ids())
            states += sorted(Q)
            T = {}
            for src in fst.states():
                for t in fst.arcs(src):
                    dest = t.nextstate
                    if dest not in T:
                        T[dest] = set()
                    T[dest].add(src)

        # (Co)accessible state ids.
        Q_old = set()
        Q_new = set(Q)
        while len(Q_new) != 0:
            Q_old, Q_new = Q_new, Q_old
            Q_new.clear()
            for src in filter(lambda q1: q1 in T, sorted(Q_old)):
                for dest in filter(lambda q2: q2 not in Q, sorted(T[src])):
                    Q.add(dest)
                    Q_new.add(dest)
                    states.append(dest)
        return states

    def coaccessible(self):
        """ Ids of states from which some final state is accessible. """
        return self.accessible(forward=False)

    def delete_states(self, states, connect=True):
        """
        Remove states by id while preserving state labels
        and arc weights; surviving states are renumbered
        in their original order.
        [nondestructive]
        """
        fst = self.fst
        live_states = set(fst.states()) - set(states)

        # Preserve input/output symbols and weight type.
        wfst = Wfst( \
            self.input_symbols().copy(),
            self.output_symbols().copy(),
            fst.arc_type())

        # Reindex live states, copying labels.
        state_map = {}
        q0 = fst.start()
        for q in sorted(live_states):
            q_id = wfst.add_state(self.state_label(q))
            state_map[q] = q_id
            if q == q0:
                wfst.set_initial(q_id)
            wfst.set_final(q_id, self.final(q))

        # Copy arcs between live states.
        for q in sorted(live_states):
            src = state_map[q]
            for t in filter(lambda t: t.nextstate in live_states, fst.arcs(q)):
                dest = state_map[t.nextstate]
                wfst.add_arc(src, t.ilabel, t.olabel, t.weight, dest)

        if connect:
            wfst = wfst.connect()
        return wfst

    # Arcs/transitions.

    def ilabel(self, x):
        """ Arc input label. """
        if isinstance(x, Arc):
            x = x.ilabel
        return self.fst.input_symbols().find(x)

    def olabel(self, x):
        """ Arc output label. """
        if isinstance(x, Arc):
            x = x.olabel
        return self.fst.output_symbols().find(x)

    def weight(self, arc):
        """ Weight on arc. """
        return arc.weight

    def arc_type(self):
        """ Arc type (standard, log, log64). """
        return self.fst.arc_type()

    def weight_type(self):
        """ Weight type (tropical, log, log64). """
        return self.fst.weight_type()

    def num_arcs(self, src=None):
        """
        Number of arcs from designated state (out-degree)
        or total number of arcs.
        """
        fst = self.fst
        if src is None:
            n = 0
            for q in fst.states():
                n += fst.num_arcs(q)
            return n
        src = self.state_id(src)
        return fst.num_arcs(src)

    def num_epsilons(self, src=None):
        """
        Number of epsilon:epsilon arcs from one state
        or from all states.
        """
        ieps, oeps = self.epsilon_ids()
        if src is None:
            arcs = (t for (_, t) in self.arcs())
        else:
            arcs = self.arcs(src)
        return sum(1 for t in arcs \
            if t.ilabel == ieps and t.olabel == oeps)

    def is_epsilon_free(self):
        """ Check for absence of epsilon:epsilon arcs. """
        return self.num_epsilons() == 0

    def arcs(self, src=None):
        """
        Iterator over arcs from designated state or from all states.
        """
        if src is None:
            for src in self.state_ids():
                for t in self.fst.arcs(src):
                    yield (src, t)  # (src, arc) pair
            return
        src = self.state_id(src)
        for t in self.fst.arcs(src):
            yield t  # Arc object.

    transitions = arcs  # Alias.

    def make_arc(self,
                 src=None,
                 ilabel=None,
                 olabel=None,
                 weight=None,
                 dest=None):
        """
        Create (but do not add) arc. Accepts id or label
        for each of src / ilabel / olabel / dest.
        Returns source state id and pynini Arc.
        """
        fst = self.fst
        src_id = self.state_id(src)
        if isinstance(ilabel, str):
            ilabel = fst.mutable_input_symbols().add_symbol(ilabel)
        if isinstance(olabel, str):
            olabel = fst.mutable_output_symbols().add_symbol(olabel)
        if olabel is None:
            olabel = ilabel
        weight = Semiring(self.weight_type()).weight(weight)
        dest_id = self.state_id(dest)
        if not 0 <= dest_id < fst.num_states():
            raise WfstError(f'Arc destination {dest} is not a state.')
        arc = Arc(ilabel, olabel, weight, dest_id)
        return src_id, arc

    def add_arc(self,
                src=None,
                ilabel=None,
                olabel=None,
                weight=None,
                dest=None):
        """
        Add arc. Accepts id or label for each of
        src / ilabel / olabel / dest.
        [destructive]
        """
        src_id, arc = self.make_arc( \
            src, ilabel, olabel, weight, dest)
        self.fst.add_arc(src_id, arc)
        return src_id, arc

    def arcsort(self, sort_type='ilabel'):
        """
        Sort arcs from each state.
        arg sort_type = 'ilabel' | 'olabel'.
        [destructive]
        """
        if sort_type == 'input':
            sort_type = 'ilabel'
        if sort_type == 'output':
            sort_type = 'olabel'
        self.fst.arcsort(sort_type)
        return self

    # Weighted strings.

    def strings(self, max_len=10, side='both'):
        """
        Weighted relation of this machine restricted to paths
        of at most max_len arcs (exact for acyclic machines
        without longer paths). Returns dictionary from input
        string (side='input'), output string (side='output'),
        or (input, output) pair (side='both') to the plus-sum
        of weights of accepting paths. Epsilons are deleted;
        strings are space-separated.
        """
        fst = self.fst
        q0 = fst.start()
        if q0 < 0:
            return {}
        semiring = Semiring(self.weight_type())
        epsilon = config.epsilon

        # note: pynini weights are unhashable (keys are labels).
        paths_old = {(q0, (), ()): semiring.one}
        accepted = {}
        for i in range(max_len + 1):
            paths_new = {}
            for path_old, weight_old in paths_old.items():
                (src, x, y) = path_old

                # Accept path.
                wfinal = fst.final(src)
                if semiring.is_not_zero(wfinal):
                    key = _string_key(x, y, side)
                    weight = semiring.times(weight_old, wfinal)
                    if key in accepted:
                        weight = semiring.plus(accepted[key], weight)
                    accepted[key] = weight

                if i == max_len:
                    continue

                # Extend path.
                for t in fst.arcs(src):
                    ilabel = self.ilabel(t)
                    olabel = self.olabel(t)
                    x_new = x if ilabel == epsilon else x + (ilabel, )
                    y_new = y if olabel == epsilon else y + (olabel, )
                    path_new = (t.nextstate, x_new, y_new)
                    weight_new = semiring.times(weight_old, t.weight)
                    if path_new in paths_new:
                        weight_new = semiring.plus( \
                            paths_new[path_new], weight_new)
                    paths_new[path_new] = weight_new

            if len(paths_new) == 0:
                break
            paths_old = paths_new
        return accepted

    # Copy/create machines.

    def copy(self):
        """
        Copy this machine, preserving input/output/state symbols.
        """
        fst = self.fst
        wfst = Wfst( \
            isymbols = fst.input_symbols().copy(),
            osymbols = fst.output_symbols().copy(),
            arc_type = fst.arc_type())
        wfst.fst = fst.copy()
        wfst._state2label = dict(self._state2label)
        wfst._label2state = dict(self._label2state)
        return wfst

    @classmethod
    def from_fst(cls, fst):
        """ Wrap pynini Fst / VectorFst in Wfst. """
        isymbols = fst.input_symbols()
        osymbols = fst.output_symbols()
        if isymbols is None or osymbols is None:
            raise WfstError('Fst to wrap must have input '
                            'and output symbol tables.')
        wfst = Wfst( \
            isymbols.copy(),
            osymbols.copy(),
            fst.arc_type())
        wfst.fst = fst
        wfst._state2label = {q: q for q in fst.states()}
        wfst._label2state = wfst._state2label.copy()
        return wfst

    def to_fst(self, copy=True):
        """ Copy (optional) and return wrapped pynini Fst. """
        if not copy:
            return self.fst
        return self.fst.copy()

    # Print/draw.

    def _state_symbols(self):
        """ Symbol table for state labels. """
        state_symbols = pynini.SymbolTable()
        for q, label in self._state2label.items():
            state_symbols.add_symbol(str(label), q)
        return state_symbols

    def print(self, show=True, **kwargs):
        """
        Print with method from pynini.
        note: kwargs can include show_weight_one=True
        """
        fst = self.fst
        ret = fst.print(isymbols=fst.input_symbols(),
                        osymbols=fst.output_symbols(),
                        ssymbols=self._state_symbols(),
                        **kwargs)
        if show:
            print(ret)
        return ret

    def __str__(self):
        return self.print(show=False)

    def draw(self, source, acceptor=False, portrait=True, **kwargs):
        """
        Write wrapped FST in dot format to file (= source)
        and render it to pdf.
        note: kwargs can include show_weight_one=True
        """
        fst = self.fst
        ret = fst.draw(source,
                       isymbols=fst.input_symbols(),
                       osymbols=fst.output_symbols(),
                       ssymbols=self._state_symbols(),
                       acceptor=acceptor,
                       portrait=portrait,
                       **kwargs)
        source_in = str(source)
        source_out = re.sub('.dot$', '.pdf', source_in)
        cmd = f'dot -Tpdf {source_in} > {source_out}'
        os.system(cmd)
        return ret

    def viz(self, **kwargs):
        """
        Draw in ipython / jupyter notebook.
        """
        self.draw('.tmp.dot', **kwargs)
        ret = Source.from_file('.tmp.dot')
        return ret

    # Operations defined outside of class.

    def connect(self, **kwargs):
        return connect(self, **kwargs)

    def rmepsilon(self, **kwargs):
        from epsfree.rmepsilon import remove_epsilon
        return remove_epsilon(self, **kwargs)

    remove_epsilon = rmepsilon  # Alias.

    def ques(self, **kwargs):
        return ques(self, **kwargs)

    def plus(self, **kwargs):
        return plus(self, **kwargs)

    def star(self, **kwargs):
        return star(self, **kwargs)

    def concat(self, wfst2, **kwargs):
        return concat(self, wfst2, **kwargs)

    def union(self, wfst2, **kwargs):
        return union(self, wfst2, **kwargs)


def _string_key(x, y, side):
    """ Key of accepted path in Wfst.strings(). """
    if side == 'input':
        return ' '.join(x)
    if side == 'output':
        return ' '.join(y)
    if side == 'both':
        return (' '.join(x), ' '.join(y))
    raise WfstError(f'Unrecognized side: {side}')


# # # # # # # # # #
# Machine constructors.


def accep(word, isymbols=None, sep=' ', add_delim=False, **kwargs):
    """
    Acceptor for space-separated word (see pynini.accep).
    pynini.accep() arguments: weight (final weight) and
    arc_type ("standard", "log", or "log64").
    """
    if not isinstance(word, str):
        word = sep.join(word)
    if add_delim:
        word = f'{config.bos} {word} {config.eos}'

    if isymbols is None:
        sigma = word.split(sep)
        isymbols, _ = config.make_symtable(sigma)
    if not isinstance(isymbols, (SymbolTable, SymbolTableView)):
        isymbols, _ = config.make_symtable(isymbols)

    fst = pynini.accep(word, token_type=isymbols, **kwargs)
    fst.set_input_symbols(isymbols)
    fst.set_output_symbols(isymbols)
    return Wfst.from_fst(fst)


# # # # # # # # # #
# Operations on single machines.


def connect(wfst_in):
    """
    Remove states and arcs that are not on successful paths.
    [nondestructive]
    """
    accessible = wfst_in.accessible()
    coaccessible = wfst_in.coaccessible()
    live_states = set(accessible) & set(coaccessible)
    dead_states = set(wfst_in.fst.states()) - live_states
    wfst = wfst_in.delete_states(dead_states, connect=False)
    return wfst


def ques(wfst_in):
    """ Optionality. [nondestructive] """
    wfst = wfst_in.copy()
    one = Weight.one(wfst.weight_type())
    q0 = wfst.initial()
    qf = wfst.add_state(final=True)
    wfst.add_arc( \
        q0,
        config.epsilon,
        config.epsilon,
        one,
        qf)
    return wfst


def plus(wfst_in):
    """
    Plus operator: epsilon arcs from each final state back
    to the initial state, weighted by the final weight.
    [nondestructive]
    """
    wfst = wfst_in.copy()
    q0 = wfst.initial()
    for qf in wfst_in.finals():
        wfst.add_arc( \
            qf,
            config.epsilon,
            config.epsilon,
            wfst_in.final(qf),
            q0)
    return wfst


def star(wfst_in):
    """
    Repetition, with a new final initial state that has
    an epsilon arc to the old initial state.
    [nondestructive]
    """
    wfst = plus(wfst_in)
    one = Weight.one(wfst.weight_type())
    q0 = wfst.initial()
    q_new = wfst.add_state(('star', q0))
    wfst.set_final(q_new, one)
    wfst.add_arc( \
        q_new,
        config.epsilon,
        config.epsilon,
        one,
        q0)
    wfst.set_initial(q_new)
    return wfst


# # # # # # # # # #
# Operations on pairs of machines.


def _add_machine(wfst, wfst_in, tag, finals=True):
    """
    Copy states (labeled (q, tag)) and arcs of wfst_in
    into wfst, optionally with final weights.
    """
    for q in wfst_in.states():
        wfst.add_state((q, tag))
    if finals:
        for q in wfst_in.finals():
            wfst.set_final((q, tag), wfst_in.final_weight(q))
    for q in wfst_in.states():
        for t in wfst_in.transitions(q):
            wfst.add_arc( \
                (q, tag),
                wfst_in.ilabel(t),
                wfst_in.olabel(t),
                wfst_in.weight(t),
                (wfst_in.state_label(t.nextstate), tag))
    return wfst


def concatenate(wfst1, wfst2):
    """
    Concatenation of two machines, assumed to share the
    same arc type; final weights of wfst1 move onto
    the epsilon arcs that bridge into wfst2.
    """
    wfst = Wfst( \
        wfst1.input_symbols().copy(),
        wfst1.output_symbols().copy(),
        wfst1.arc_type())

    _add_machine(wfst, wfst1, 1, finals=False)
    wfst.set_initial((wfst1.initial(), 1))
    _add_machine(wfst, wfst2, 2)

    # Bridging arcs.
    for q1 in wfst1.finals():
        wfst.add_arc( \
            (q1, 1),
            config.epsilon,
            config.epsilon,
            wfst1.final_weight(q1),
            (wfst2.initial(), 2))
    return wfst


concat = concatenate  # Alias.


def union(wfst1, wfst2):
    """
    Union of two machines, assumed to share the
    same arc type.
    """
    wfst = Wfst( \
        wfst1.input_symbols().copy(),
        wfst1.output_symbols().copy(),
        wfst1.arc_type())
    one = Weight.one(wfst.weight_type())

    q0 = wfst.add_state(initial=True)
    _add_machine(wfst, wfst1, 1)
    _add_machine(wfst, wfst2, 2)

    # Bridging arcs.
    q1 = (wfst1.initial(), 1)
    q2 = (wfst2.initial(), 2)
    wfst.add_arc(q0, config.epsilon, config.epsilon, one, q1)
    wfst.add_arc(q0, config.epsilon, config.epsilon, one, q2)
    return wfst
