"""Tests for the Datalog reader, evaluator and fact index."""

import pytest

from blockgraph.core.datalog.engine import UNBOUND, QueryError, run_query
from blockgraph.core.datalog.reader import Keyword, ReadError, Symbol, read_form
from blockgraph.core.datalog.store import FactIndex, LocalExecutor
from blockgraph.models.node import Block, Page

PAGES = [Page(uid="page00001", title="Notes", created=1, modified=2)]
BLOCKS = [
    Block("parent001", "page00001", None, "Project Alpha", 10, 20, 0, 1),
    Block("child0001", "page00001", "parent001", "deadline March", 11, 21, 0, 2),
    Block("other0001", "page00001", None, "Unrelated", 12, 22, 1, 1, refs=("page00001",)),
]


@pytest.fixture
def index() -> FactIndex:
    return FactIndex.from_graph(PAGES, BLOCKS)


def test_read_form_reads_vectors_keywords_and_strings() -> None:
    form = read_form('[:find ?b :where [?b :block/string "a \\"q\\""]]')
    assert form[0] == Keyword("find")
    assert form[1] == Symbol("?b")
    assert form[3] == [Symbol("?b"), Keyword("block/string"), 'a "q"']


def test_read_form_reads_lists_as_tuples_and_numbers() -> None:
    assert read_form("(not [?b :a 1.5])") == (Symbol("not"), [Symbol("?b"), Keyword("a"), 1.5])


def test_read_form_rejects_trailing_input() -> None:
    with pytest.raises(ReadError, match="Trailing"):
        read_form("[:find ?x] extra")


def test_read_form_rejects_unterminated_vector() -> None:
    with pytest.raises(ReadError, match="Missing"):
        read_form("[:find ?x")


def test_run_query_matches_data_patterns(index: FactIndex) -> None:
    rows = run_query(
        '[:find ?uid :where [?b :block/string "Project Alpha"] [?b :block/uid ?uid]]', index
    )
    assert rows == [("parent001",)]


def test_run_query_follows_children_links(index: FactIndex) -> None:
    rows = run_query(
        "[:find ?c-uid :where [?p :block/uid \"parent001\"] [?p :block/children ?c] "
        "[?c :block/uid ?c-uid]]",
        index,
    )
    assert rows == [("child0001",)]


def test_run_query_supports_pattern_functions_and_not(index: FactIndex) -> None:
    query = """[:find ?uid
     :where
      [(re-pattern "(?i).*project.*") ?pat]
      [?b :block/string ?s]
      (not [(re-find ?pat ?s)])
      [?b :block/uid ?uid]]"""
    rows = run_query(query, index)
    assert sorted(rows) == [("child0001",), ("other0001",)]


def test_run_query_or_deduplicates_bindings(index: FactIndex) -> None:
    query = """[:find ?uid
     :where
      [?b :block/string ?s]
      (or [(clojure.string/includes? ?s "Alpha")]
          [(clojure.string/includes? ?s "Project")])
      [?b :block/uid ?uid]]"""
    assert run_query(query, index) == [("parent001",)]


def test_run_query_resolves_refs(index: FactIndex) -> None:
    query = """[:find ?uid
     :where
      [?page :node/title "Notes"]
      [?b :block/refs ?page]
      [?b :block/uid ?uid]]"""
    assert run_query(query, index) == [("other0001",)]


def test_run_query_rejects_unknown_function(index: FactIndex) -> None:
    with pytest.raises(QueryError, match="Unknown function"):
        run_query("[:find ?b :where [?b :block/string ?s] [(shout ?s)]]", index)


def test_run_query_rejects_unbound_function_arguments(index: FactIndex) -> None:
    with pytest.raises(QueryError, match="Insufficient bindings"):
        run_query("[:find ?s :where [(re-find ?pat ?s)] [?b :block/string ?s]]", index)


def test_run_query_rejects_non_find_queries(index: FactIndex) -> None:
    with pytest.raises(QueryError, match=":find"):
        run_query("[:where [?b :block/uid ?u]]", index)


def test_fact_index_records_ancestry_and_page(index: FactIndex) -> None:
    child = index.entity("child0001")
    page = index.entity("page00001")
    parent = index.entity("parent001")
    assert child is not None
    parents = [v for _, v in index.datoms("block/parents", child, UNBOUND)]
    assert parents == [page, parent]
    assert [v for _, v in index.datoms("block/page", child, UNBOUND)] == [page]


def test_fact_index_links_top_level_blocks_to_page(index: FactIndex) -> None:
    page = index.entity("page00001")
    children = {v for _, v in index.datoms("block/children", page, UNBOUND)}
    assert children == {index.entity("parent001"), index.entity("other0001")}


def test_local_executor_runs_query_text() -> None:
    executor = LocalExecutor.from_graph(PAGES, BLOCKS)
    rows = executor.q('[:find ?t :where [?p :block/uid "page00001"] [?p :node/title ?t]]')
    assert rows == [("Notes",)]
