"""Regex heuristics over raw source text.

Nothing here parses the source. Function extraction finds top-level
``function name(...) { ... }`` declarations only: arrow functions,
anonymous function expressions, methods and functions nested inside an
already-extracted body are not reported. Braces inside strings, comments
and regex literals are counted like any other brace.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .constants import EXCERPT_LIMIT

logger = logging.getLogger(__name__)

_FUNCTION_RE = re.compile(r"\bfunction\s+([A-Za-z_$][\w$]*)\s*\([^)]*\)\s*\{")

# ``else if (`` also matches the plain ``if (`` pattern, so it adds two.
_COMPLEXITY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bif\s*\("),
    re.compile(r"\belse\s+if\s*\("),
    re.compile(r"\bfor\s*\("),
    re.compile(r"\bwhile\s*\("),
    re.compile(r"\bcase\s+"),
    re.compile(r"&&"),
    re.compile(r"\|\|"),
)

_CLASS_RE = re.compile(r"\bclass\s+([A-Za-z_$][\w$]*)")
_DECLARED_FUNCTION_RE = re.compile(r"\bfunction\s*\*?\s*([A-Za-z_$][\w$]*)\s*\(")
_VARIABLE_RE = re.compile(r"\b(const|let|var)\s+([A-Za-z_$][\w$]*)\s*=")
_DECL_PREFIX_RE = re.compile(r"(?:\b(?:export|default|async)\s*)+$")

NAMING_CONVENTIONS: dict[str, re.Pattern[str]] = {
    "camelCase": re.compile(r"^[a-z][a-zA-Z0-9]*$"),
    "PascalCase": re.compile(r"^[A-Z][a-zA-Z0-9]*$"),
    "UPPER_SNAKE_CASE": re.compile(r"^[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*$"),
    "snake_case": re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$"),
}


@dataclass
class FunctionInfo:
    name: str
    body: str
    line: int
    start: int


@dataclass
class Identifier:
    kind: str  # "variable", "function", "class" or "constant"
    name: str
    line: int


def line_number(code: str, index: int) -> int:
    """1-based line of *index* in *code*; 0 when the offset is unknown."""
    if index < 0:
        return 0
    return code.count("\n", 0, index) + 1


def _matching_brace(code: str, open_idx: int) -> int:
    depth = 0
    for i in range(open_idx, len(code)):
        ch = code[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return len(code)


def extract_functions(code: str) -> list[FunctionInfo]:
    functions: list[FunctionInfo] = []
    resume_at = 0
    for m in _FUNCTION_RE.finditer(code):
        if m.start() < resume_at:
            continue
        open_idx = m.end() - 1
        close_idx = _matching_brace(code, open_idx)
        functions.append(
            FunctionInfo(
                name=m.group(1),
                body=code[open_idx + 1 : close_idx],
                line=line_number(code, m.start()),
                start=m.start(),
            )
        )
        resume_at = close_idx
    return functions


def cyclomatic_complexity(body: str) -> int:
    return 1 + sum(len(p.findall(body)) for p in _COMPLEXITY_PATTERNS)


def count_lines(body: str) -> int:
    return len(body.split("\n"))


def has_doc_comment(code: str, start: int) -> bool:
    """True when a ``/** ... */`` block sits directly before offset *start*."""
    preceding = code[:start].rstrip()
    preceding = _DECL_PREFIX_RE.sub("", preceding).rstrip()
    if not preceding.endswith("*/"):
        return False
    opener = preceding.rfind("/*")
    return opener != -1 and preceding.startswith("/**", opener)


def extract_identifiers(code: str) -> list[Identifier]:
    found: list[Identifier] = []
    for m in _CLASS_RE.finditer(code):
        found.append(Identifier("class", m.group(1), line_number(code, m.start())))
    for m in _DECLARED_FUNCTION_RE.finditer(code):
        found.append(Identifier("function", m.group(1), line_number(code, m.start())))
    upper = NAMING_CONVENTIONS["UPPER_SNAKE_CASE"]
    for m in _VARIABLE_RE.finditer(code):
        keyword, name = m.group(1), m.group(2)
        kind = "constant" if keyword == "const" and upper.match(name.lstrip("_$")) else "variable"
        found.append(Identifier(kind, name, line_number(code, m.start())))
    found.sort(key=lambda ident: ident.line)
    return found


def matches_convention(name: str, convention: str) -> bool:
    pattern = NAMING_CONVENTIONS.get(convention)
    if pattern is None:
        logger.debug("Unknown naming convention %r; accepting %s", convention, name)
        return True
    bare = name.lstrip("_$")
    if not bare:
        return True
    return bool(pattern.match(bare))


def mask_secret(secret: str) -> str:
    if len(secret) <= 10:
        return "***"
    return secret[:4] + "***" + secret[-4:]


def excerpt(text: str, limit: int = EXCERPT_LIMIT) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")
