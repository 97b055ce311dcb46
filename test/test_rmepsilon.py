import pynini
import pytest
from pynini import Arc, Weight

from epsfree import (Semiring, SemiringError, Wfst, WfstError, accep, concat,
                     remove_epsilon, ques, star, union)


def test_epsilon_arc_folded_into_next_arc(symtable, eps, arc_set,
                                          final_weights):
    # 0 -eps/2-> 1 -a:a/3-> 2, state 2 final (tropical).
    M = Wfst(symtable)
    for q in [0, 1, 2]:
        M.add_state(q)
    M.set_initial(0)
    M.set_final(2, 0.0)
    M.add_arc(0, eps, eps, 2.0, 1)
    M.add_arc(1, 'a', 'a', 3.0, 2)

    R = M.rmepsilon()
    assert R.is_epsilon_free()
    assert list(R.states()) == [0, 2]
    assert arc_set(R) == {(0, 'a', 'a', 5.0, 2)}
    assert final_weights(R) == {2: 0.0}


def test_final_weight_through_epsilon(symtable, eps, final_weights):
    M = Wfst(symtable)
    for q in ['s', 'f']:
        M.add_state(q)
    M.set_initial('s')
    M.set_final('f', 2.0)
    M.add_arc('s', eps, eps, 3.0, 'f')

    R = remove_epsilon(M)
    assert list(R.states()) == ['s']
    assert final_weights(R) == {'s': 5.0}
    assert R.num_arcs() == 0


def test_final_weights_accumulate(symtable, eps):
    S = Semiring('log')
    M = Wfst(symtable, arc_type='log')
    for q in ['s', 'f1', 'f2']:
        M.add_state(q)
    M.set_initial('s')
    M.set_final('s', S.from_prob(0.1))
    M.set_final('f1', S.from_prob(0.5))
    M.set_final('f2', S.from_prob(0.5))
    M.add_arc('s', eps, eps, S.from_prob(0.4), 'f1')
    M.add_arc('s', eps, eps, S.from_prob(0.6), 'f2')

    R = M.rmepsilon()
    # 0.1 + 0.4 * 0.5 + 0.6 * 0.5
    assert S.to_prob(R.final('s')) == pytest.approx(0.6, abs=1e-4)


def test_final_weight_unchanged_without_epsilon_paths(symtable, eps,
                                                      final_weights):
    M = Wfst(symtable)
    for q in ['s', 't', 'f']:
        M.add_state(q)
    M.set_initial('s')
    M.set_final('t', 1.0)
    M.set_final('f', 4.0)
    M.add_arc('s', 'a', 'a', 0.5, 't')
    M.add_arc('t', 'b', 'b', 0.5, 'f')
    M.add_arc('s', eps, eps, 1.0, 't')

    R = M.rmepsilon()
    assert final_weights(R) == {'s': 2.0, 't': 1.0, 'f': 4.0}


def test_one_sided_epsilons_kept(symtable, eps, arc_set):
    M = Wfst(symtable)
    for q in range(3):
        M.add_state()
    M.set_initial(0)
    M.set_final(2)
    M.add_arc(0, eps, 'a', 1.0, 1)
    M.add_arc(1, 'b', eps, 1.0, 2)

    R = M.rmepsilon()
    assert arc_set(R) == {(0, eps, 'a', 1.0, 1), (1, 'b', eps, 1.0, 2)}
    assert R.is_epsilon_free()


def test_non_epsilon_arcs_preserved(symtable, eps, arc_set):
    M = Wfst(symtable)
    for q in ['p', 'q', 'r']:
        M.add_state(q)
    M.set_initial('p')
    M.set_final('r')
    M.add_arc('p', 'a', 'b', 1.0, 'q')
    M.add_arc('q', 'c', 'c', 2.0, 'r')
    M.add_arc('p', eps, eps, 0.5, 'q')
    M.add_arc('q', 'b', 'a', 3.0, 'p')

    R = M.rmepsilon()
    original = {arc for arc in arc_set(M) if arc[1:3] != (eps, eps)}
    assert original <= arc_set(R)
    assert arc_set(R) - original == \
        {('p', 'c', 'c', 2.5, 'r'), ('p', 'b', 'a', 3.5, 'p')}


def test_weight_preservation(symtable, same_relation):
    A = accep('a b', symtable, arc_type='log', weight=Weight('log', 0.7))
    B = accep('c', symtable, arc_type='log', weight=Weight('log', 1.2))
    C = accep('a', symtable, arc_type='log', weight=Weight('log', 0.3))
    M = concat(union(A, B), ques(union(C, B)))
    assert not M.is_epsilon_free()

    R = M.rmepsilon()
    assert R.is_epsilon_free()
    same_relation(M, R, max_len=12)


def test_parallel_epsilon_paths(symtable, eps, same_relation):
    S = Semiring('log')
    M = Wfst(symtable, arc_type='log')
    for q in range(3):
        M.add_state()
    M.set_initial(0)
    M.set_final(2)
    M.add_arc(0, eps, eps, S.from_prob(1.0), 1)
    M.add_arc(0, eps, eps, S.from_prob(4.0), 1)
    M.add_arc(1, 'a', 'a', S.from_prob(1.0), 2)

    R = M.rmepsilon()
    strings = R.strings()
    assert S.to_prob(strings[('a', 'a')]) == pytest.approx(5.0, abs=1e-4)
    same_relation(M, R)


def test_epsilon_cycles(symtable, eps):
    S = Semiring('log')
    M = Wfst(symtable, arc_type='log')
    for q in range(3):
        M.add_state()
    M.set_initial(0)
    M.set_final(2)
    M.add_arc(0, eps, eps, S.from_prob(0.5), 0)
    M.add_arc(0, eps, eps, S.from_prob(0.25), 1)
    M.add_arc(1, eps, eps, S.from_prob(0.5), 0)
    M.add_arc(1, 'a', 'a', S.from_prob(1.0), 2)

    R = M.rmepsilon()
    assert R.is_epsilon_free()
    strings = R.strings()
    assert list(strings) == [('a', 'a')]
    # Epsilon paths 0 ~> 1: 0.25 / (1 - 0.5 - 0.125) = 2/3.
    assert S.to_prob(strings[('a', 'a')]) == pytest.approx(2 / 3, abs=1e-4)


def test_star(symtable):
    M = star(union(accep('a', symtable), accep('b', symtable)))
    R = M.rmepsilon()
    assert R.is_epsilon_free()
    # Each symbol takes three arcs before removal and one after.
    assert set(R.strings(max_len=2)) == set(M.strings(max_len=8)) == \
        {('', ''), ('a', 'a'), ('b', 'b'), ('a a', 'a a'), ('a b', 'a b'),
         ('b a', 'b a'), ('b b', 'b b')}


def test_idempotent(symtable, arc_set, final_weights):
    M = Wfst(symtable)
    for q in ['p', 'q', 'r']:
        M.add_state(q)
    M.set_initial('p')
    M.set_final('r', 0.5)
    M.add_arc('p', 'c', 'a', 1.0, 'q')
    M.add_arc('p', 'a', 'a', 2.0, 'q')
    M.add_arc('q', 'b', 'b', 1.0, 'r')
    M.add_arc('r', 'a', 'c', 1.0, 'p')

    R = M.rmepsilon()
    assert list(R.states()) == list(M.states())
    assert arc_set(R) == arc_set(M)
    assert final_weights(R) == final_weights(M)
    assert arc_set(R.rmepsilon()) == arc_set(R)


def test_arcs_sorted_by_input(symtable, eps):
    M = Wfst(symtable)
    for q in range(3):
        M.add_state()
    M.set_initial(0)
    M.set_final(2)
    M.add_arc(0, 'c', 'c', None, 2)
    M.add_arc(0, eps, eps, None, 1)
    M.add_arc(1, 'b', 'b', None, 2)
    M.add_arc(1, 'a', 'a', None, 2)

    R = M.rmepsilon()
    ilabels = [t.ilabel for t in R.arcs(0)]
    assert ilabels == sorted(ilabels)
    assert [R.ilabel(t) for t in R.arcs(0)] == ['a', 'b', 'c']


def test_input_not_modified(symtable, eps):
    M = accep('a b', symtable)
    M.add_arc(0, eps, eps, 1.0, 2)
    before = str(M)
    R = M.rmepsilon()
    assert str(M) == before
    assert M.num_epsilons() == 1
    R.add_arc(0, 'c', 'c', None, 0)
    assert str(M) == before


def test_unsupported_semiring(symtable):
    M = accep('a', symtable)
    with pytest.raises(SemiringError):
        remove_epsilon(M, semiring=Semiring('probability'))
    with pytest.raises(SemiringError):
        remove_epsilon(None)


def test_missing_epsilon_symbol(eps):
    isymbols = pynini.SymbolTable()
    isymbols.add_symbol('a')
    M = Wfst(isymbols)
    M.add_state(initial=True, final=True)
    with pytest.raises(WfstError):
        M.rmepsilon()

    symtable = pynini.SymbolTable()
    symtable.add_symbol(eps)
    symtable.add_symbol('a')
    M = Wfst(symtable, isymbols)
    M.add_state(initial=True, final=True)
    with pytest.raises(WfstError):
        M.rmepsilon()


def test_missing_initial_state(symtable):
    M = Wfst(symtable)
    M.add_state(final=True)
    with pytest.raises(WfstError):
        M.rmepsilon()


def test_arc_to_missing_state(symtable):
    M = accep('a', symtable)
    M.fst.add_arc(0, Arc(0, 0, Weight.one('tropical'), 7))
    with pytest.raises(WfstError):
        M.rmepsilon()
