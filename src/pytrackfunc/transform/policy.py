"""Skip and idempotency decisions for a single function declaration."""

from __future__ import annotations

import ast

from pytrackfunc.transform.types import FunctionNode, HookMatch

SKIP_MARKER = "notrack"
RUNTIME_NAME = "pytrackfunc"
HOOK_NAME = "hook"


def docstring_node(node: FunctionNode) -> ast.Expr | None:
    """Return the docstring expression statement, if the body opens with one."""
    if not node.body:
        return None
    first = node.body[0]
    if (
        isinstance(first, ast.Expr)
        and isinstance(first.value, ast.Constant)
        and isinstance(first.value.value, str)
    ):
        return first
    return None


def body_statements(node: FunctionNode) -> list[ast.stmt]:
    """Body statements after the docstring."""
    if docstring_node(node) is None:
        return list(node.body)
    return list(node.body[1:])


def is_stub(node: FunctionNode) -> bool:
    """True for bodies that are only a docstring and/or ``...``.

    Such bodies are interface declarations (protocol members, abstract
    methods, overloads) rather than code that runs, so they are left alone
    just like ``...`` stubs. A ``pass`` body is real code and is tracked.
    """
    return all(
        isinstance(stmt, ast.Expr)
        and isinstance(stmt.value, ast.Constant)
        and stmt.value.value is Ellipsis
        for stmt in body_statements(node)
    )


def comment_block_above(node: FunctionNode, lines: list[str]) -> list[str]:
    """Contiguous ``#`` comment lines directly above the def or its decorators."""
    first_row = min([node.lineno, *(d.lineno for d in node.decorator_list)])
    block: list[str] = []
    index = first_row - 2
    while index >= 0 and lines[index].lstrip().startswith("#"):
        block.append(lines[index])
        index -= 1
    block.reverse()
    return block


def should_skip(node: FunctionNode, lines: list[str], marker: str = SKIP_MARKER) -> bool:
    """True if the docstring or the comment block above contains ``marker``."""
    doc = docstring_node(node)
    doc_lines = doc.value.value.splitlines() if doc is not None else []
    return any(marker in line for line in [*comment_block_above(node, lines), *doc_lines])


def classify_statement(
    stmt: ast.stmt,
    runtime: str = RUNTIME_NAME,
    hook: str = HOOK_NAME,
) -> HookMatch:
    """Classify a statement as a generated hook ``with`` block or not.

    Only the exact generated shape matches: a plain ``with`` holding one
    item, no ``as`` target, whose context expression is
    ``<runtime>.<hook>(<str literal>, <expr>)`` without keywords.
    """
    if not isinstance(stmt, ast.With) or len(stmt.items) != 1:
        return HookMatch.UNRECOGNIZED

    item = stmt.items[0]
    call = item.context_expr
    if item.optional_vars is not None or not isinstance(call, ast.Call):
        return HookMatch.UNRECOGNIZED
    if call.keywords or len(call.args) != 2:
        return HookMatch.UNRECOGNIZED

    func = call.func
    if not (
        isinstance(func, ast.Attribute)
        and func.attr == hook
        and isinstance(func.value, ast.Name)
        and func.value.id == runtime
    ):
        return HookMatch.UNRECOGNIZED

    label = call.args[0]
    if not (isinstance(label, ast.Constant) and isinstance(label.value, str)):
        return HookMatch.UNRECOGNIZED
    return HookMatch.GENERATED_HOOK


def already_instrumented(
    node: FunctionNode,
    runtime: str = RUNTIME_NAME,
    hook: str = HOOK_NAME,
) -> bool:
    """True if the first statement after the docstring is the generated hook."""
    stmts = body_statements(node)
    if not stmts:
        return False
    return classify_statement(stmts[0], runtime, hook) == HookMatch.GENERATED_HOOK
