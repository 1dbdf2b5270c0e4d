"""Unit tests for NamedEntityLinker."""

import pytest

from ne_linker.aggregator import SequenceCounter
from ne_linker.config import LinkerConfig
from ne_linker.errors import LookupFailure
from ne_linker.recommender import NamedEntityLinker
from ne_linker.types import Offset


@pytest.fixture
def linker(kb_service, lookup, document_service) -> NamedEntityLinker:
    config = LinkerConfig(project="proj", user="tester")
    return NamedEntityLinker(kb_service, lookup, document_service, config=config)


def identifiers(result):
    return [[[p.identifier for p in span] for span in sentence] for sentence in result]


class TestAssembleAndLink:
    def test_obama_scenario(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add(
            "proj",
            make_kb(
                "wikidata",
                candidates={"Barack Obama": [("Q76", "Barack Obama"), ("Q9696", "Obama, Oklahoma")]},
            ),
        )
        sentence, tagged = make_sentence(["Barack", "Obama", "was"], tagged=[0, 1])

        result = linker.assemble_and_link([sentence], tagged, "proj", "tester", max_predictions=3)

        assert len(result) == 1
        assert len(result[0]) == 1
        predictions = result[0][0]
        assert [(p.identifier, p.description) for p in predictions] == [
            ("Q76", "Barack Obama"),
            ("Q9696", "Obama, Oklahoma"),
        ]
        assert predictions[0].span.text == "Barack Obama"
        assert predictions[0].span.offset == Offset(0, 12, 0, 2)

    def test_skips_knowledge_base_without_linking(self, linker, kb_service, lookup, make_kb, make_sentence):
        kb_service.add("proj", make_kb("first", default=[("A", ""), ("B", "")]))
        kb_service.add("proj", make_kb("second", default=[("C", "")], supports_linking=False))
        sentence, tagged = make_sentence(["Obama"], tagged=[0])

        result = linker.assemble_and_link([sentence], tagged, "proj", "tester")

        assert identifiers(result) == [[["A", "B"]]]
        assert lookup.queried == ["first"]

    def test_max_predictions_one(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add("proj", make_kb("kb", default=[(f"Q{i}", "") for i in range(5)]))
        sentence, tagged = make_sentence(["Obama"], tagged=[0])
        result = linker.assemble_and_link([sentence], tagged, "proj", "tester", max_predictions=1)
        assert identifiers(result) == [[["Q0"]]]

    def test_last_token_entity(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add("proj", make_kb("kb", candidates={"Paris": [("Q90", "Paris")]}))
        sentence, tagged = make_sentence(["He", "visited", "Paris"], tagged=[2])
        result = linker.assemble_and_link([sentence], tagged, "proj", "tester")
        assert identifiers(result) == [[["Q90"]]]

    def test_nesting_per_sentence_and_span(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add(
            "proj",
            make_kb("kb", candidates={"Obama": [("Q76", "")], "Hawaii": [("Q782", "")], "Honolulu": [("Q18094", "")]}),
        )
        first, tagged_first = make_sentence(["Obama", "spoke"], tagged=[0])
        second, tagged_second = make_sentence(
            ["In", "Honolulu", ",", "Hawaii"], tagged=[1, 3], first_token=2, first_char=13
        )
        empty, _ = make_sentence(["Nothing", "here"], first_token=6, first_char=40)

        result = linker.assemble_and_link(
            [first, second, empty], tagged_first | tagged_second, "proj", "tester"
        )

        assert identifiers(result) == [[["Q76"]], [["Q18094"], ["Q782"]], []]

    def test_sequence_ids_distinct_across_run(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add("proj", make_kb("a", default=[("A1", ""), ("A2", "")]))
        kb_service.add("proj", make_kb("b", default=[("B1", "")]))
        s1, t1 = make_sentence(["Obama", "and", "Biden"], tagged=[0, 2])
        s2, t2 = make_sentence(["Merkel"], tagged=[0], first_token=3, first_char=20)

        result = linker.assemble_and_link([s1, s2], t1 | t2, "proj", "tester")

        ids = [p.sequence_id for sentence in result for span in sentence for p in span]
        assert len(ids) == 9
        assert len(set(ids)) == len(ids)
        assert ids == sorted(ids)

    def test_shared_counter_across_calls(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add("proj", make_kb("kb", default=[("A", "")]))
        sentence, tagged = make_sentence(["Obama"], tagged=[0])
        counter = SequenceCounter()
        first = linker.assemble_and_link([sentence], tagged, "proj", "tester", counter=counter)
        second = linker.assemble_and_link([sentence], tagged, "proj", "tester", counter=counter)
        assert first[0][0][0].sequence_id != second[0][0][0].sequence_id

    def test_failing_knowledge_base_does_not_abort(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add("proj", make_kb("broken", error=LookupFailure("unreadable")))
        kb_service.add("proj", make_kb("ok", default=[("A", ""), ("B", ""), ("C", ""), ("D", "")]))
        sentence, tagged = make_sentence(["Obama", "met", "Biden"], tagged=[0, 2])

        result = linker.assemble_and_link([sentence], tagged, "proj", "tester")

        assert identifiers(result) == [[["A", "B", "C"], ["A", "B", "C"]]]

    def test_unknown_project_has_no_knowledge_bases(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add("proj", make_kb("kb", default=[("A", "")]))
        sentence, tagged = make_sentence(["Obama"], tagged=[0])
        result = linker.assemble_and_link([sentence], tagged, "other", "tester")
        assert identifiers(result) == [[[]]]

    def test_negative_max_predictions_rejected(self, linker):
        with pytest.raises(ValueError):
            linker.assemble_and_link([], set(), "proj", "tester", max_predictions=-1)

    def test_link_sentences_keeps_spans_without_predictions(self, linker, make_sentence):
        sentence, tagged = make_sentence(["Obama"], tagged=[0])
        (linked,), = linker.link_sentences([sentence], tagged, "proj", "tester")
        assert linked.span.text == "Obama"
        assert linked.predictions == []


class TestFrameworkSetters:
    def test_predict_sentences_uses_configured_state(self, linker, kb_service, make_kb, make_sentence):
        kb_service.add("proj", make_kb("kb", default=[("A", "")]))
        sentence, tagged = make_sentence(["Obama"], tagged=[0])
        linker.set_model(tagged)
        assert identifiers(linker.predict_sentences([sentence])) == [[["A"]]]

    def test_constructor_tag_set(self, kb_service, lookup, document_service, make_kb, make_sentence):
        kb_service.add("proj", make_kb("kb", default=[("A", "")]))
        sentence, tagged = make_sentence(["Obama"], tagged=[0])
        linker = NamedEntityLinker(
            kb_service,
            lookup,
            document_service,
            config=LinkerConfig(project="proj"),
            tagged_offsets=tagged,
        )
        assert identifiers(linker.predict_sentences([sentence])) == [[["A"]]]

    def test_set_model_accepts_tokens(self, linker, make_sentence):
        sentence, _ = make_sentence(["Barack", "Obama"])
        linker.set_model(set(sentence))
        assert linker.tagged_offsets == {t.offset for t in sentence}

    @pytest.mark.parametrize("model", [None, ["not", "a", "set"], {"strings"}, 42])
    def test_malformed_model_falls_back_to_empty(self, linker, make_sentence, caplog, model):
        _, tagged = make_sentence(["Obama"], tagged=[0])
        linker.set_model(tagged)
        linker.set_model(model)
        assert linker.tagged_offsets == frozenset()
        assert "Expected model type" in caplog.text

    def test_set_user_and_project(self, linker, kb_service, lookup, make_kb, make_sentence, document_service):
        document_service.add_document("other", "doc-1", "Obama")
        kb_service.add("other", make_kb("other-kb", default=[("X", "")]))
        sentence, tagged = make_sentence(["Obama"], tagged=[0])
        linker.set_model(tagged)
        linker.set_project("other")
        linker.set_user("bob")

        assert identifiers(linker.predict_sentences([sentence])) == [[["X"]]]
        session = lookup.calls[0][4]
        assert session.project == "other"
        assert session.user == "bob"
