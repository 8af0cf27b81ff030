"""Tree-sitter well-formedness checks for CSS and JavaScript fragments."""

from __future__ import annotations

from dataclasses import dataclass
from types import ModuleType

import tree_sitter
import tree_sitter_css
import tree_sitter_javascript

_GRAMMARS: dict[str, ModuleType] = {
    "javascript": tree_sitter_javascript,
    "css": tree_sitter_css,
}

_parser_cache: dict[str, tree_sitter.Parser] = {}

_SNIPPET_CHARS = 30


@dataclass(frozen=True)
class SyntaxIssue:
    """First parse error in a fragment (1-based line and column)."""

    language: str
    line: int
    column: int
    message: str


def _get_parser(language: str) -> tree_sitter.Parser:
    """Get or create a cached tree-sitter parser."""
    if language not in _parser_cache:
        capsule: object = _GRAMMARS[language].language()
        _parser_cache[language] = tree_sitter.Parser(
            tree_sitter.Language(capsule)
        )
    return _parser_cache[language]


def _first_error_node(root: tree_sitter.Node) -> tree_sitter.Node | None:
    """Depth-first, source-ordered search for an ERROR or MISSING node."""
    if not root.has_error:
        return None
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_error or node.is_missing:
            return node
        # reversed so the leftmost child is visited first
        stack.extend(
            child
            for child in reversed(node.children)
            if child.has_error or child.is_missing
        )
    return root


def check_syntax(source: str, language: str) -> SyntaxIssue | None:
    """Parse source and describe its first syntax error, if any."""
    if not source.strip():
        return None

    data = source.encode("utf-8")
    tree = _get_parser(language).parse(data)
    node = _first_error_node(tree.root_node)
    if node is None:
        return None

    row, col = node.start_point
    if node.is_missing:
        message = f"{language} syntax error: missing '{node.type}'"
    else:
        snippet = data[node.start_byte : node.end_byte].decode(
            "utf-8", errors="replace"
        )
        snippet = " ".join(snippet.split())[:_SNIPPET_CHARS]
        if snippet:
            message = f"{language} syntax error: unexpected '{snippet}'"
        else:
            message = f"{language} syntax error: unexpected end of input"
    return SyntaxIssue(
        language=language,
        line=row + 1,
        column=col + 1,
        message=message,
    )


def check_behavior(source: str) -> SyntaxIssue | None:
    return check_syntax(source, "javascript")


def check_appearance(source: str) -> SyntaxIssue | None:
    return check_syntax(source, "css")
