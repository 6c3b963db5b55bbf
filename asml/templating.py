"""A small Handlebars-compatible template renderer.

Supports ``{{path}}`` (HTML-escaped), ``{{{path}}}`` (raw), comments
(``{{! ...}}``) and the ``if``, ``unless`` and ``each`` block helpers with
``{{else}}`` branches. Paths may be dotted, may start with ``this`` and may
name the loop locals ``@index``, ``@first``, ``@last`` and ``@key``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


class TemplateError(ValueError):
    """Raised when a template cannot be parsed."""


_TAG = re.compile(r"\{\{\{\s*(.*?)\s*\}\}\}|\{\{\s*(.*?)\s*\}\}", re.DOTALL)
_ESCAPES = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#x27;",
        "`": "&#x60;",
        "=": "&#x3D;",
    }
)
_BLOCK_HELPERS = frozenset({"if", "unless", "each"})


@dataclass
class _Text:
    text: str


@dataclass
class _Var:
    path: str
    escape: bool


@dataclass
class _Block:
    helper: str
    path: str
    body: list = field(default_factory=list)
    inverse: list = field(default_factory=list)


@dataclass(frozen=True)
class _Scope:
    context: Any
    locals: Mapping[str, Any]


def _parse(template: str) -> list:
    root: list = []
    current = root
    stack: list[tuple[_Block, list]] = []
    pos = 0
    for match in _TAG.finditer(template):
        if match.start() > pos:
            current.append(_Text(template[pos : match.start()]))
        pos = match.end()

        raw = match.group(1)
        if raw is not None:
            current.append(_Var(raw, escape=False))
            continue

        tag = match.group(2)
        if tag.startswith("!"):
            continue
        if tag.startswith("#"):
            helper, _, path = tag[1:].partition(" ")
            path = path.strip()
            if helper not in _BLOCK_HELPERS:
                raise TemplateError(f"unknown block helper: {helper!r}")
            if not path:
                raise TemplateError(f"block helper {helper!r} needs an argument")
            block = _Block(helper, path)
            current.append(block)
            stack.append((block, current))
            current = block.body
        elif tag == "else":
            if not stack or current is stack[-1][0].inverse:
                raise TemplateError("'else' outside of a block")
            current = stack[-1][0].inverse
        elif tag.startswith("/"):
            name = tag[1:].strip()
            if not stack:
                raise TemplateError(f"unexpected closing tag {name!r}")
            block, parent = stack.pop()
            if block.helper != name:
                raise TemplateError(
                    f"closing tag {name!r} does not match open block {block.helper!r}"
                )
            current = parent
        else:
            current.append(_Var(tag, escape=True))

    if pos < len(template):
        current.append(_Text(template[pos:]))
    if stack:
        raise TemplateError(f"unclosed block {stack[-1][0].helper!r}")
    return root


def _lookup(path: str, scope: _Scope) -> Any:
    if path.startswith("@"):
        return scope.locals.get(path[1:])
    if path in ("this", "."):
        return scope.context
    parts = path.split(".")
    if parts[0] == "this":
        parts = parts[1:]
    value = scope.context
    for part in parts:
        if isinstance(value, Mapping):
            value = value.get(part)
        elif (
            isinstance(value, Sequence)
            and not isinstance(value, str)
            and part.isdigit()
            and int(part) < len(value)
        ):
            value = value[int(part)]
        else:
            return None
    return value


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"))


def _iterate(value: Any):
    if isinstance(value, Mapping):
        keys = list(value)
        for index, key in enumerate(keys):
            yield value[key], {
                "index": index,
                "key": key,
                "first": index == 0,
                "last": index == len(keys) - 1,
            }
    elif isinstance(value, Sequence) and not isinstance(value, str):
        for index, item in enumerate(value):
            yield item, {
                "index": index,
                "first": index == 0,
                "last": index == len(value) - 1,
            }


def _render_nodes(nodes: list, scope: _Scope, out: list[str]) -> None:
    for node in nodes:
        if isinstance(node, _Text):
            out.append(node.text)
        elif isinstance(node, _Var):
            text = _stringify(_lookup(node.path, scope))
            out.append(text.translate(_ESCAPES) if node.escape else text)
        else:
            value = _lookup(node.path, scope)
            if node.helper == "each":
                rendered_any = False
                for item, loop_locals in _iterate(value):
                    rendered_any = True
                    _render_nodes(node.body, _Scope(item, loop_locals), out)
                if not rendered_any:
                    _render_nodes(node.inverse, scope, out)
            else:
                truthy = bool(value)
                if node.helper == "unless":
                    truthy = not truthy
                _render_nodes(node.body if truthy else node.inverse, scope, out)


def render(template: str, data: Mapping[str, Any]) -> str:
    """Render ``template`` against the JSON-like mapping ``data``."""
    out: list[str] = []
    _render_nodes(_parse(template), _Scope(data, {}), out)
    return "".join(out)