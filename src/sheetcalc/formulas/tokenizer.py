"""Lark-based lexer that turns formula text into evaluator tokens.

Token classes (highest lexing priority first):
- Sign toggle: ``+/-`` (wins over a bare ``+``)
- Cell labels: ``A1``, ``AB23`` (upper-case letters then digits)
- Numbers: ``12``, ``1.5``, ``.5``, ``2e3``
- Operators ``+ - * /`` and grouping ``( )``
- Bare words, passed through untouched so the evaluator can reject them

A unary ``-`` directly before a number is folded into it (``-3``).
"""

from __future__ import annotations

from typing import Iterable

from lark import Lark, Token
from lark.exceptions import UnexpectedInput

from sheetcalc.formulas.errors import FormulaParseError

# The grammar accepts any sequence of tokens: structure is checked by the
# evaluator, not here.
GRAMMAR = r"""
start: (SIGN_TOGGLE | CELL_LABEL | NUMBER | OPERATOR | LPAR | RPAR | WORD)*

SIGN_TOGGLE.4: "+/-"
CELL_LABEL.3: /[A-Z]+[0-9]+(?![A-Za-z_])/
NUMBER.2: /([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?/
OPERATOR: "+" | "-" | "*" | "/"
LPAR: "("
RPAR: ")"
WORD.1: /[A-Za-z_][A-Za-z0-9_]*/

%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", lexer="basic", start="start", keep_all_tokens=True)


def tokenize(text: str) -> list[str]:
    """Split formula text into the token list consumed by the evaluator.

    Args:
        text: The formula text, e.g. ``"(A1 + 2) * 3"``. A leading ``=``
            is accepted and dropped.

    Returns:
        Ordered list of token strings. Empty for blank text.

    Raises:
        FormulaParseError: If the text contains a character no token can
            start with.
    """
    text = text.strip()
    if text.startswith("="):
        text = text[1:]
    if not text.strip():
        return []
    try:
        tree = _parser.parse(text)
    except UnexpectedInput as exc:
        pos = getattr(exc, "column", None)
        raise FormulaParseError(str(exc).strip().splitlines()[0], position=pos) from exc
    return _merge_signs([child for child in tree.children if isinstance(child, Token)])


def _merge_signs(tokens: list[Token]) -> list[str]:
    """Fold a unary minus into the number that follows it.

    A ``-`` is unary at the start of the formula or after an operator or
    ``(``, so ``2 * -3`` yields ``["2", "*", "-3"]``.
    """
    out: list[str] = []
    prev: Token | None = None
    pending_minus = False
    for tok in tokens:
        unary_slot = prev is None or prev.type in ("OPERATOR", "LPAR")
        if tok.type == "OPERATOR" and tok == "-" and unary_slot and not pending_minus:
            pending_minus = True
            prev = tok
            continue
        if pending_minus:
            if tok.type == "NUMBER":
                out.append("-" + str(tok))
            else:
                out.extend(["-", str(tok)])
            pending_minus = False
        else:
            out.append(str(tok))
        prev = tok
    if pending_minus:
        out.append("-")
    return out


def format_formula(tokens: Iterable[str]) -> str:
    """Render a token sequence for display, e.g. ``"( A1 + 2 ) * 3"``."""
    return " ".join(tokens)
