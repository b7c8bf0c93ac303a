"""Tests for backlink and graph queries."""
import pytest

from notegraph_mcp.exceptions import NoteNotFoundError


@pytest.fixture
def corpus(import_service, reindex_service, write_note):
    """Three notes: Alpha -> Beta (twice), Gamma -> Beta, Gamma -> Missing."""
    paths = [
        write_note("alpha.md", "---\ntitle: Alpha\n---\n[[Beta]] and [[Beta|again]]"),
        write_note("beta.md", "---\ntitle: Beta\ntags: [core]\n---\nplain"),
        write_note("gamma.md", "---\ntitle: Gamma\n---\n[[Beta|b]] [[Missing]] [[Missing]]"),
    ]
    result = import_service.import_notes([str(p) for p in paths])
    reindex_service.reindex()
    return {entry.title: entry.note_id for entry in result.notes}


class TestBacklinks:
    """Tests for get_backlinks."""

    def test_distinct_sources_ordered_by_title(self, corpus, graph_service):
        backlinks = graph_service.get_backlinks("Beta")

        assert [b.title for b in backlinks] == ["Alpha", "Gamma"]
        assert [b.note_id for b in backlinks] == [corpus["Alpha"], corpus["Gamma"]]
        # Label is the source note's title
        assert [b.label for b in backlinks] == ["Alpha", "Gamma"]

    def test_backlinks_to_unresolved_title(self, corpus, graph_service):
        backlinks = graph_service.get_backlinks("Missing")
        assert [b.title for b in backlinks] == ["Gamma"]

    def test_no_backlinks(self, corpus, graph_service):
        assert graph_service.get_backlinks("Alpha") == []
        assert graph_service.get_backlinks("Nobody") == []

    def test_serialized_keys(self, corpus, graph_service):
        data = graph_service.get_backlinks("Beta")[0].to_dict()
        assert set(data) == {"noteId", "title", "label"}

    def test_empty_store(self, graph_service):
        assert graph_service.get_backlinks("Anything") == []

    def test_every_resolved_edge_has_its_backlink(self, import_service, reindex_service,
                                                   graph_service, uow_factory, write_note):
        paths = [
            write_note("A.md", "[[B]] [[C]]"),
            write_note("B.md", "[[C]]"),
            write_note("C.md", "[[A|back]]"),
        ]
        import_service.import_notes([str(p) for p in paths])
        reindex_service.reindex()

        with uow_factory() as uow:
            titles = {note.id: note.title for note in uow.notes.get_all()}
            links = uow.links.get_resolved()
        assert len(links) == 4
        for link in links:
            sources = [b.note_id for b in graph_service.get_backlinks(titles[link.to_note_id])]
            assert link.from_note_id in sources

    def test_colliding_title_uses_resolver_winner(self, import_service, reindex_service,
                                                  graph_service, write_note):
        first = write_note("a.md", "---\ntitle: Same\n---\nfirst")
        last = write_note("z.md", "---\ntitle: Old\n---\nlast")
        source = write_note("s.md", "---\ntitle: Source\n---\n[[Old]]")
        import_service.import_notes([str(first), str(last), str(source)])
        reindex_service.reindex()

        # z.md now shares "Same" with a.md and wins it; the edge still says "Old"
        write_note("z.md", "---\ntitle: Same\n---\nlast")
        import_service.import_notes([str(last)])

        assert [b.title for b in graph_service.get_backlinks("Same")] == ["Source"]


class TestGraph:
    """Tests for get_graph."""

    def test_nodes_and_resolved_edges(self, corpus, graph_service):
        graph = graph_service.get_graph()

        assert sorted(node.title for node in graph.nodes) == ["Alpha", "Beta", "Gamma"]
        pairs = sorted((e.source, e.target) for e in graph.links)
        assert pairs == sorted([
            (corpus["Alpha"], corpus["Beta"]),
            (corpus["Alpha"], corpus["Beta"]),
            (corpus["Gamma"], corpus["Beta"]),
        ])

    def test_graph_json_shape(self, corpus, graph_service):
        data = graph_service.get_graph().to_dict()
        assert set(data) == {"nodes", "links"}
        assert set(data["nodes"][0]) == {"id", "title"}
        assert set(data["links"][0]) == {"source", "target"}

    def test_empty_store(self, graph_service):
        graph = graph_service.get_graph()
        assert graph.nodes == []
        assert graph.links == []


class TestNoteQueries:
    """Lookups used by the MCP tools."""

    def test_get_note_by_id_or_title(self, corpus, graph_service):
        assert graph_service.get_note(corpus["Beta"]).title == "Beta"
        note = graph_service.get_note("Beta")
        assert note.id == corpus["Beta"]
        assert [tag.name for tag in note.tags] == ["core"]

    def test_get_note_missing(self, graph_service):
        with pytest.raises(NoteNotFoundError):
            graph_service.get_note("nope")

    def test_outgoing_links_in_order(self, corpus, graph_service):
        links = graph_service.get_outgoing_links(corpus["Gamma"])
        assert [(l.to_title, l.link_text, l.position) for l in links] == [
            ("Beta", "b", 0),
            ("Missing", "Missing", 1),
            ("Missing", "Missing", 2),
        ]

    def test_unresolved_report(self, corpus, graph_service):
        [target] = graph_service.get_unresolved_links()
        assert target.to_title == "Missing"
        assert target.occurrences == 2
        assert target.source_note_ids == [corpus["Gamma"]]

    def test_list_notes_filter(self, corpus, graph_service):
        assert [n.title for n in graph_service.list_notes()] == ["Alpha", "Beta", "Gamma"]
        assert [n.title for n in graph_service.list_notes(title_contains="amm")] == ["Gamma"]
        assert [n.title for n in graph_service.list_notes(limit=1, offset=1)] == ["Beta"]

    def test_list_notes_escapes_wildcards(self, corpus, graph_service):
        assert graph_service.list_notes(title_contains="%") == []

    def test_stats_and_last_indexed(self, corpus, graph_service):
        stats = graph_service.get_stats()
        assert stats["notes"] == 3
        assert stats["links"] == 5
        assert stats["unresolved_links"] == 2
        assert stats["tags"] == 1
        assert graph_service.last_indexed_at() is not None
        assert stats["last_indexed_at"] == graph_service.last_indexed_at().isoformat()
