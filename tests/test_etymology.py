import json

from conftest import FakeCompletion, FakeDictionary, etymology_reply, scripted_responder

from etymology_viz.domain_types import Etymology
from etymology_viz.infra import ResolutionCache
from etymology_viz.services.etymology import (
    EtymologyResolver, fallback_etymology, parse_wiktionary_extract,
)

RANG_EXTRACT = (
    "रंग\n\nEtymology\n"
    "Borrowed from Classical Persian رنگ (rang), from Middle Persian, from Proto-Iranian *ráŋgah.\n\n"
    "Noun\n\nरंग • (raṅg) m\n1. colour, hue\n2. dye\n\n"
    "Derived terms\nरंगीन, रंगरेज़; बेरंग, रंगोली\n"
)


class TestParseWiktionaryExtract:
    """Heuristic parsing of dictionary prose."""

    def test_full_entry(self):
        ety = parse_wiktionary_extract("रंग", RANG_EXTRACT)
        assert ety.word == "रंग"
        assert ety.origin == "Persian"
        assert ety.evolution == ("Classical", "Middle", "Proto-Iranian")
        assert ety.meaning == "colour, hue"
        assert ety.related_words == ("रंगीन", "रंगरेज़", "बेरंग")

    def test_origin_priority(self):
        extract = "Etymology\nFrom Arabic, ultimately from Sanskrit.\n"
        assert parse_wiktionary_extract("w", extract).origin == "Sanskrit"

    def test_unrecognized_origin(self):
        extract = "Etymology\nFrom Latin ventus.\n"
        ety = parse_wiktionary_extract("wind", extract)
        assert ety.origin == "Unknown"
        assert ety.evolution == ("Latin",)

    def test_no_from_tokens(self):
        ety = parse_wiktionary_extract("w", "Etymology\nOf Hindi coinage.\n")
        assert ety.origin == "Hindi"
        assert ety.evolution == ("Original form",)
        assert ety.meaning == "Traditional meaning"

    def test_evolution_deduplicated(self):
        ety = parse_wiktionary_extract("w", "Etymology\nfrom dil, from dil; from Persian.\n")
        assert ety.evolution == ("dil", "Persian")

    def test_basic_record_without_etymology_section(self):
        ety = parse_wiktionary_extract("दुनिया", "दुनिया\nNoun\n1. world, earth\n")
        assert ety == Etymology(word="दुनिया", origin="Traditional", evolution=("दुनिया",),
                                meaning="world, earth")

    def test_related_cap(self):
        ety = parse_wiktionary_extract("रंग", RANG_EXTRACT, max_related=1)
        assert ety.related_words == ("रंगीन",)


class TestResolve:

    def test_dictionary_hit_is_cached(self):
        dictionary = FakeDictionary({"रंग": RANG_EXTRACT})
        resolver = EtymologyResolver(dictionary=dictionary)

        first = resolver.resolve("रंग")
        second = resolver.resolve("रंग")

        assert first is second
        assert first.origin == "Persian"
        assert dictionary.calls == ["रंग"]
        assert resolver.get_status()["hits"] == 1

    def test_cache_key_is_normalized(self):
        dictionary = FakeDictionary({"Rain": "Noun\n1. water falling\n"})
        resolver = EtymologyResolver(dictionary=dictionary)

        assert resolver.resolve("Rain").meaning == "water falling"
        assert resolver.resolve("rain").meaning == "water falling"
        assert dictionary.calls == ["Rain"]

    def test_language_is_part_of_key(self):
        dictionary = FakeDictionary({"रंग": RANG_EXTRACT})
        resolver = EtymologyResolver(dictionary=dictionary)
        resolver.resolve("रंग", "hi")
        resolver.resolve("रंग", "ur")
        assert len(dictionary.calls) == 2

    def test_injected_store(self):
        store = {}
        resolver = EtymologyResolver(dictionary=FakeDictionary({"रंग": RANG_EXTRACT}),
                                     cache=ResolutionCache("etymology", store=store))
        resolver.resolve("रंग")
        assert ("रंग", "hi") in store

    def test_ai_used_when_dictionary_fails(self):
        completion = FakeCompletion(scripted_responder(etymology=etymology_reply("दिल", origin="Persian")))
        resolver = EtymologyResolver(dictionary=FakeDictionary(failing={"दिल"}), completion=completion)

        ety = resolver.resolve("दिल", context="दिल से")
        assert ety.origin == "Persian"
        assert "दिल से" in completion.prompts[0]

        resolver.resolve("दिल")
        assert len(completion.prompts) == 1

    def test_ai_reply_in_code_fence(self):
        reply = "Here you go:\n```json\n" + etymology_reply("रंग") + "\n```"
        resolver = EtymologyResolver(completion=FakeCompletion(lambda p: reply))
        assert resolver.resolve("रंग").origin == "Sanskrit"

    def test_ai_array_reply_uses_matching_entry(self):
        reply = "[" + etymology_reply("प्यार", origin="Sanskrit") + "," + \
            etymology_reply("रंग", origin="Persian") + "]"
        resolver = EtymologyResolver(completion=FakeCompletion(lambda p: reply))
        assert resolver.resolve("रंग").origin == "Persian"

    def test_malformed_ai_reply_gives_uncached_fallback(self):
        completion = FakeCompletion(lambda p: "I am not sure about that word.")
        resolver = EtymologyResolver(completion=completion)

        ety = resolver.resolve("रंग")
        assert ety == fallback_etymology("रंग")
        assert ety.origin == "Unknown origin"
        assert ety.evolution == ("रंग",)
        assert ety.meaning == "Contextual meaning"
        assert ety.related_words == ()

        resolver.resolve("रंग")
        assert len(completion.prompts) == 2

    def test_ai_raising_gives_fallback(self):
        def boom(prompt):
            raise TimeoutError("slow")
        resolver = EtymologyResolver(completion=FakeCompletion(boom))
        assert resolver.resolve("रंग") == fallback_etymology("रंग")

    def test_none_without_ai_backend(self):
        assert EtymologyResolver(dictionary=FakeDictionary()).resolve("रंग") is None
        unavailable = FakeCompletion(lambda p: etymology_reply("रंग"), available=False)
        assert EtymologyResolver(completion=unavailable).resolve("रंग") is None
        assert unavailable.prompts == []

    def test_punctuation_only_word(self):
        dictionary = FakeDictionary()
        assert EtymologyResolver(dictionary=dictionary).resolve("।") is None
        assert dictionary.calls == []

    def test_clear_cache(self):
        dictionary = FakeDictionary({"रंग": RANG_EXTRACT})
        resolver = EtymologyResolver(dictionary=dictionary)
        resolver.resolve("रंग")
        resolver.clear_cache()
        resolver.resolve("रंग")
        assert len(dictionary.calls) == 2


class TestResolveBatch:

    def test_only_resolved_words_returned(self):
        dictionary = FakeDictionary({"रंग": RANG_EXTRACT, "दुनिया": "1. world\n"}, failing={"दिल"})
        resolver = EtymologyResolver(dictionary=dictionary)

        results = resolver.resolve_batch(["रंग", "दुनिया", "दिल", "रंग"])

        assert set(results) == {"रंग", "दुनिया"}
        assert dictionary.calls.count("रंग") == 1

    def test_combined_ai_request(self):
        reply = json.dumps([
            {"word": "दिल", "origin": "Persian", "evolution": ["dil"], "meaning": "heart",
             "relatedWords": ["दिलदार"]},
        ])
        completion = FakeCompletion(scripted_responder(etymology=reply))
        dictionary = FakeDictionary({"रंग": RANG_EXTRACT})
        resolver = EtymologyResolver(dictionary=dictionary, completion=completion)

        results = resolver.resolve_batch(["रंग", "दिल", "मोहब्बत"], context="रंग दिल मोहब्बत",
                                         combine_ai=True)

        assert len(completion.prompts) == 1
        assert "दिल, मोहब्बत" in completion.prompts[0]
        assert results["रंग"].origin == "Persian"
        assert results["दिल"].meaning == "heart"
        assert results["मोहब्बत"] == fallback_etymology("मोहब्बत")

        # The AI answer is cached, the fallback is not
        assert resolver.resolve_batch(["दिल"], combine_ai=True)["दिल"].meaning == "heart"
        assert len(completion.prompts) == 1

    def test_combined_without_ai_drops_missing(self):
        resolver = EtymologyResolver(dictionary=FakeDictionary({"रंग": RANG_EXTRACT}))
        assert set(resolver.resolve_batch(["रंग", "दिल"], combine_ai=True)) == {"रंग"}

    def test_empty(self):
        assert EtymologyResolver().resolve_batch([]) == {}
