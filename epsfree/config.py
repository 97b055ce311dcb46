import logging
from pynini import SymbolTable

epsilon = eps = 'ϵ'  # <eps>
bos = '⋊'  # Beginning-of-string / start symbol (alternatives '>' or <s>).
eos = '⋉'  # End-of-string / stop symbol (alternatives '<' or </s>).
special_syms = []  # Special symbols.
sigma = ['a', 'b']  # Ordinary symbols.
syms = []  # All symbols in symtable.
symtable = None  # SymbolTable.

delta = 1e-6  # Convergence threshold (pynini default).
max_iter = 100000  # Relaxation budget for epsilon cycles.

verbose = 0


def init(param=None, **kwargs):
    """
    Set globals with dictionary, module / namespace, 
    or keyword arguments; rebuilds the symbol table.
    """
    global epsilon, eps, bos, eos
    global sigma, special_syms
    global syms, symtable
    global delta, max_iter, verbose
    if param is None:
        param = {}
    if not isinstance(param, dict):
        param = vars(param)
    param = dict(param, **kwargs)
    if 'epsilon' in param:
        epsilon = eps = param['epsilon']
    if 'bos' in param:
        bos = param['bos']
    if 'eos' in param:
        eos = param['eos']
    if 'special_syms' in param:
        special_syms = list(param['special_syms'])
    if 'sigma' in param:
        sigma = list(param['sigma'])
    if 'delta' in param:
        delta = param['delta']
    if 'max_iter' in param:
        max_iter = param['max_iter']
    if 'verbose' in param:
        verbose = param['verbose']
    symtable, syms = make_symtable(sigma)
    return symtable, syms


def make_symtable(sigma):
    """ Create symbol table from symbol list. """
    symtable = SymbolTable()
    symtable.add_symbol(epsilon)  # Symbol id 0 (OpenFst convention).
    symtable.add_symbol(bos)  # Symbol id 1.
    symtable.add_symbol(eos)  # Symbol id 2.
    for sym in special_syms:  # Special symbols.
        symtable.add_symbol(sym)
    for sym in sigma:  # Ordinary symbols.
        symtable.add_symbol(sym)
    syms = [sym for (sym_id, sym) in symtable]
    return symtable, syms


def print_symtable(symtable_=None):
    """
    Print SymbolTable / SymbolTableView as 
    (symbol_id, symbol) pairs.
    """
    if not symtable_:
        symtable_ = symtable
    for (sym_id, sym) in symtable_:
        print(f'{sym_id}\t{sym}')


# Logging
logger = logging.getLogger(__name__)
_formatter = logging.Formatter('%(levelno)s: %(message)s')
_handler = logging.StreamHandler()
_handler.setFormatter(_formatter)
logger.addHandler(_handler)
