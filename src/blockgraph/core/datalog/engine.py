"""Evaluate Datalog queries against an in-memory fact index.

Supports the subset the query compiler emits: data patterns, function
predicates and bindings, ``not``, ``or`` and ``and``. Clauses are evaluated
left to right over a list of variable bindings, so clause order matters for
speed but not for results.
"""

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

from blockgraph.core.datalog.reader import Keyword, ReadError, Symbol, read_form

Binding = dict[str, Any]


class QueryError(ValueError):
    """Raised when a query cannot be parsed or evaluated."""


class DatomSource(Protocol):
    """Anything that can enumerate (entity, value) pairs for an attribute."""

    def datoms(self, attribute: str, entity: Any, value: Any) -> Iterable[tuple[Any, Any]]: ...


class _Unbound:
    def __repr__(self) -> str:
        return "UNBOUND"


UNBOUND: Any = _Unbound()


@dataclass(frozen=True)
class ParsedQuery:
    find: tuple[str, ...]
    where: tuple[Any, ...]


@lru_cache(maxsize=512)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        msg = f"Invalid pattern {pattern!r}: {e}"
        raise QueryError(msg) from e


def _re_find(pattern: Any, text: Any) -> Any:
    if not isinstance(pattern, re.Pattern):
        msg = f"re-find expects a pattern, got {pattern!r}"
        raise QueryError(msg)
    if not isinstance(text, str):
        return None
    match = pattern.search(text)
    return match.group(0) if match else None


def _strings(fn: Callable[[str, str], bool]) -> Callable[[Any, Any], bool]:
    def wrapper(s: Any, sub: Any) -> bool:
        return isinstance(s, str) and isinstance(sub, str) and fn(s, sub)

    return wrapper


FUNCTIONS: dict[str, Callable[..., Any]] = {
    "re-pattern": _compile_pattern,
    "re-find": _re_find,
    "=": lambda *args: all(a == args[0] for a in args),
    "not=": lambda *args: not all(a == args[0] for a in args),
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
    "ground": lambda value: value,
    "identity": lambda value: value,
    "clojure.string/includes?": _strings(lambda s, sub: sub in s),
    "clojure.string/starts-with?": _strings(str.startswith),
    "clojure.string/ends-with?": _strings(str.endswith),
    "clojure.string/lower-case": lambda s: s.lower() if isinstance(s, str) else None,
}


def _truthy(value: Any) -> bool:
    return value is not None and value is not False


def _is_var(term: Any) -> bool:
    return isinstance(term, Symbol) and term.name.startswith("?")


def _is_blank(term: Any) -> bool:
    return isinstance(term, Symbol) and term.name == "_"


def parse_query(text: str) -> ParsedQuery:
    """Split ``[:find ... :in ... :where ...]`` into its sections."""
    try:
        form = read_form(text)
    except ReadError as e:
        msg = f"Cannot read query: {e}"
        raise QueryError(msg) from e
    if not isinstance(form, list) or not form or form[0] != Keyword("find"):
        msg = "Query must be a vector starting with :find"
        raise QueryError(msg)

    sections: dict[str, list[Any]] = {}
    current: str | None = None
    for item in form:
        if isinstance(item, Keyword):
            current = item.name
            sections[current] = []
        elif current is not None:
            sections[current].append(item)

    find = sections.get("find", [])
    if not find or not all(_is_var(v) for v in find):
        msg = "Only variables are supported in :find"
        raise QueryError(msg)
    extra_inputs = [i for i in sections.get("in", []) if i != Symbol("$")]
    if extra_inputs:
        msg = f"Unsupported :in inputs: {extra_inputs!r}"
        raise QueryError(msg)
    return ParsedQuery(
        find=tuple(v.name for v in find),
        where=tuple(sections.get("where", [])),
    )


def _resolve(term: Any, binding: Binding) -> Any:
    if _is_var(term):
        return binding.get(term.name, UNBOUND)
    if _is_blank(term):
        return UNBOUND
    return term


def _extend(binding: Binding, term: Any, value: Any) -> Binding:
    if _is_var(term) and term.name not in binding:
        return {**binding, term.name: value}
    return binding


def _match_pattern(
    clause: list[Any], bindings: list[Binding], source: DatomSource
) -> list[Binding]:
    if len(clause) not in (2, 3) or not isinstance(clause[1], Keyword):
        msg = f"Unsupported data pattern: {clause!r}"
        raise QueryError(msg)
    entity_term, attribute = clause[0], clause[1].name
    value_term = clause[2] if len(clause) == 3 else Symbol("_")

    out: list[Binding] = []
    for binding in bindings:
        entity = _resolve(entity_term, binding)
        value = _resolve(value_term, binding)
        for e, v in source.datoms(attribute, entity, value):
            out.append(_extend(_extend(binding, entity_term, e), value_term, v))
    return out


def _apply_function(clause: list[Any], bindings: list[Binding]) -> list[Binding]:
    call = clause[0]
    if not call or not isinstance(call[0], Symbol):
        msg = f"Unsupported function clause: {clause!r}"
        raise QueryError(msg)
    name = call[0].name
    fn = FUNCTIONS.get(name)
    if fn is None:
        msg = f"Unknown function: {name}"
        raise QueryError(msg)
    output = clause[1] if len(clause) > 1 else None

    out: list[Binding] = []
    for binding in bindings:
        args = [_resolve(a, binding) for a in call[1:]]
        if any(a is UNBOUND for a in args):
            msg = f"Insufficient bindings for ({name} ...)"
            raise QueryError(msg)
        result = fn(*args)
        if output is None:
            if _truthy(result):
                out.append(binding)
            continue
        if not _truthy(result):
            continue
        current = _resolve(output, binding)
        if current is UNBOUND:
            out.append(_extend(binding, output, result))
        elif current == result:
            out.append(binding)
    return out


def _branch_clauses(branch: Any) -> tuple[Any, ...]:
    if isinstance(branch, tuple) and branch and branch[0] == Symbol("and"):
        return branch[1:]
    return (branch,)


def _dedupe(bindings: Iterable[Binding]) -> list[Binding]:
    seen: set[tuple[tuple[str, Any], ...]] = set()
    out: list[Binding] = []
    for binding in bindings:
        key = tuple(sorted(binding.items(), key=lambda kv: kv[0]))
        if key not in seen:
            seen.add(key)
            out.append(binding)
    return out


def _apply(clause: Any, bindings: list[Binding], source: DatomSource) -> list[Binding]:
    if isinstance(clause, tuple) and clause and isinstance(clause[0], Symbol):
        head = clause[0].name
        if head == "not":
            return [b for b in bindings if not evaluate_clauses(clause[1:], [b], source)]
        if head == "or":
            return _dedupe(
                result
                for b in bindings
                for branch in clause[1:]
                for result in evaluate_clauses(_branch_clauses(branch), [b], source)
            )
        if head == "and":
            return evaluate_clauses(clause[1:], bindings, source)
        msg = f"Unsupported rule clause: ({head} ...)"
        raise QueryError(msg)
    if isinstance(clause, list) and clause:
        if isinstance(clause[0], tuple):
            return _apply_function(clause, bindings)
        return _match_pattern(clause, bindings, source)
    msg = f"Unsupported clause: {clause!r}"
    raise QueryError(msg)


def evaluate_clauses(
    clauses: Iterable[Any], bindings: list[Binding], source: DatomSource
) -> list[Binding]:
    for clause in clauses:
        if not bindings:
            break
        bindings = _apply(clause, bindings, source)
    return bindings


def _project(bindings: list[Binding], find: tuple[str, ...]) -> Iterator[tuple[Any, ...]]:
    seen: set[tuple[Any, ...]] = set()
    for binding in bindings:
        missing = [name for name in find if name not in binding]
        if missing:
            msg = f"Unbound :find variables: {', '.join(missing)}"
            raise QueryError(msg)
        row = tuple(binding[name] for name in find)
        if row not in seen:
            seen.add(row)
            yield row


def run_query(text: str, source: DatomSource) -> list[tuple[Any, ...]]:
    """Parse and evaluate ``text``, returning distinct result tuples.

    Raises:
        QueryError: On unsupported syntax or insufficiently bound clauses.
    """
    query = parse_query(text)
    bindings = evaluate_clauses(query.where, [{}], source)
    return list(_project(bindings, query.find))
