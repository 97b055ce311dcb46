import pytest

from epsfree import config


@pytest.fixture(autouse=True)
def symtable():
    """ Alphabet a, b, c (+ epsilon, bos, eos). """
    symtable, _ = config.init(sigma=['a', 'b', 'c'])
    return symtable


@pytest.fixture
def eps():
    return config.epsilon


@pytest.fixture
def arc_set():
    """ Arcs of a machine as (src, ilabel, olabel, weight, dest) label tuples. """

    def _arc_set(M):
        return { \
            (M.state_label(q), M.ilabel(t), M.olabel(t),
             round(float(t.weight), 4), M.state_label(t.nextstate))
            for (q, t) in M.arcs()}

    return _arc_set


@pytest.fixture
def final_weights():
    """ Final weights of a machine by state label. """

    def _final_weights(M):
        return {M.state_label(q): float(M.final(q)) for q in M.final_ids()}

    return _final_weights


@pytest.fixture
def same_relation():
    """ Check that two machines have the same weighted relation. """

    def _same_relation(M1, M2, max_len=10):
        S1 = M1.strings(max_len)
        S2 = M2.strings(max_len)
        assert set(S1) == set(S2)
        for key, w in S1.items():
            assert float(S2[key]) == pytest.approx(float(w), abs=1e-4)
        return True

    return _same_relation
