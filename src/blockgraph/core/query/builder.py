"""Typed Datalog query AST rendered to the graph's query dialect.

Queries are assembled from clause objects and only turned into text by
``Query.render()``. Variables come from a per-query ``VariableNamer`` so
independently compiled fragments never collide.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Var:
    """A logic variable, rendered as ``?name``."""

    name: str

    def render(self) -> str:
        return f"?{self.name}"


Term = Var | str | int | float


def render_string(value: str) -> str:
    """Render a string literal, escaping backslashes, quotes and newlines."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def render_term(term: Term) -> str:
    if isinstance(term, Var):
        return term.render()
    if isinstance(term, bool):
        return "true" if term else "false"
    if isinstance(term, int | float):
        return str(term)
    return render_string(term)


@dataclass(frozen=True)
class DataPattern:
    """``[?e :attr value]``; the attribute is a keyword such as ``:block/uid``."""

    entity: Var
    attribute: str
    value: Term

    def render(self) -> str:
        return f"[{self.entity.render()} {self.attribute} {render_term(self.value)}]"


@dataclass(frozen=True)
class FnBinding:
    """``[(fn args...) ?out]``: binds the function result to a variable."""

    fn: str
    args: tuple[Term, ...]
    output: Var

    def render(self) -> str:
        args = " ".join(render_term(a) for a in self.args)
        return f"[({self.fn} {args}) {self.output.render()}]"


@dataclass(frozen=True)
class Predicate:
    """``[(fn args...)]``: keeps bindings for which the call is truthy."""

    fn: str
    args: tuple[Term, ...]

    def render(self) -> str:
        args = " ".join(render_term(a) for a in self.args)
        return f"[({self.fn} {args})]"


@dataclass(frozen=True)
class Not:
    clauses: tuple["Clause", ...]

    def render(self) -> str:
        inner = " ".join(c.render() for c in self.clauses)
        return f"(not {inner})"


@dataclass(frozen=True)
class And:
    clauses: tuple["Clause", ...]

    def render(self) -> str:
        inner = " ".join(c.render() for c in self.clauses)
        return f"(and {inner})"


@dataclass(frozen=True)
class Or:
    branches: tuple["Clause", ...]

    def render(self) -> str:
        inner = "\n    ".join(b.render() for b in self.branches)
        return f"(or {inner})"


Clause = DataPattern | FnBinding | Predicate | Not | And | Or


@dataclass
class QueryFragment:
    """Clauses produced for one condition set.

    ``bindings`` must precede ``clauses``: they resolve pattern objects and
    referenced entities that the match clauses consume.
    """

    bindings: list[Clause] = field(default_factory=list)
    clauses: list[Clause] = field(default_factory=list)

    def extend(self, other: "QueryFragment") -> None:
        self.bindings.extend(other.bindings)
        self.clauses.extend(other.clauses)

    def all_clauses(self) -> list[Clause]:
        return [*self.bindings, *self.clauses]


@dataclass(frozen=True)
class Query:
    find: tuple[Var, ...]
    where: tuple[Clause, ...]

    def render(self) -> str:
        find = " ".join(v.render() for v in self.find)
        where = "\n  ".join(c.render() for c in self.where)
        return f"[:find {find}\n :where\n  {where}]"


class VariableNamer:
    """Hands out unique variable names within one query.

    Every name carries a per-stem counter suffix, so ``fresh("pattern")``
    yields ``?pattern-0``, ``?pattern-1``, ... regardless of which compiler
    call asks for it.
    """

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    def fresh(self, stem: str) -> Var:
        n = self._counts.get(stem, 0)
        self._counts[stem] = n + 1
        return Var(f"{stem}-{n}")
