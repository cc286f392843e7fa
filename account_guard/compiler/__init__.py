"""
Constraint expression compiler.

Compiles the constraint expression language into shape-checked trees that
evaluate against a scope of accounts and values.

Key Components:
- tokenizer / parser: Text to expression tree, with source positions on errors
- validator: Static shape checking against a ContextShape
- evaluator: Total evaluation; absent or ill-formed data yields Invalid
- canonicalizer: Deterministic text and JSON renderings
- builder: Programmatic construction of expression trees

Design Principles:
- Determinism: The same expression always renders to the same text and JSON
- Validation: Every access path is checked before an expression is used
- Totality: Evaluation never raises for runtime data
"""

from account_guard.compiler.canonicalizer import canonicalize_json, render_expression
from account_guard.compiler.compiler import (
    CompiledExpression,
    clear_compile_cache,
    compile_expression,
)
from account_guard.compiler.evaluator import evaluate, evaluate_bool
from account_guard.compiler.parser import parse_expression
from account_guard.compiler.validator import check_expression

__all__ = [
    "CompiledExpression",
    "compile_expression",
    "clear_compile_cache",
    "parse_expression",
    "check_expression",
    "evaluate",
    "evaluate_bool",
    "render_expression",
    "canonicalize_json",
]
