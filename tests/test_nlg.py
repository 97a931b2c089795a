"""Tests for NLG modules: prompt_builder, response_normalizer, fallback."""
import json
import random
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.nlg.fallback import FALLBACK_POOL, FallbackProvider
from src.nlg.prompt_builder import build_prompt
from src.nlg.response_normalizer import (
    DEFAULT_CHOICES,
    Choice,
    TurnPayload,
    extract_json_object,
    normalize_response,
)
from src.utils.errors import InvalidShape, MalformedResponse


def _raw(story="You stand in a dark hall.", choices=None, **extra):
    if choices is None:
        choices = [{"id": str(i), "text": f"Action {i}"} for i in range(1, 5)]
    return json.dumps({"story": story, "choices": choices, **extra})


# ── Prompt builder ──────────────────────────────────────────────────

class TestPromptBuilder:
    def test_first_turn_has_opening_task_and_topic(self):
        prompt = build_prompt("medieval fantasy", [], "", is_first_turn=True)
        assert "STORY TOPIC: medieval fantasy" in prompt
        assert 'GRIPPING opening for "medieval fantasy"' in prompt
        assert "PLAYER ACTION" not in prompt

    def test_first_turn_ignores_history(self):
        prompt = build_prompt("space", ["Player: a\nNarrator: b"], "", is_first_turn=True)
        assert "RECENT CONTEXT" not in prompt

    def test_style_contract_present(self):
        prompt = build_prompt("space", [], "open hatch", is_first_turn=False)
        assert "second person" in prompt
        assert "50-120 words" in prompt
        assert "exactly 4 distinct" in prompt
        assert '"choices"' in prompt

    def test_later_turn_uses_only_last_two_entries(self):
        history = [f"Player: act {i}\nNarrator: resp {i}" for i in range(5)]
        prompt = build_prompt("space", history, "open hatch", is_first_turn=False)
        assert "RECENT CONTEXT" in prompt
        assert "act 3" in prompt and "act 4" in prompt
        assert "act 2" not in prompt
        assert "PLAYER ACTION: open hatch" in prompt
        assert "IMMEDIATE consequences" in prompt

    def test_no_context_block_without_history(self):
        prompt = build_prompt("space", [], "open hatch", is_first_turn=False)
        assert "RECENT CONTEXT" not in prompt

    def test_deterministic(self):
        args = ("noir", ["Player: x\nNarrator: y"], "knock", False)
        assert build_prompt(*args) == build_prompt(*args)

    def test_missing_topic_still_builds(self):
        prompt = build_prompt(None, [], None, is_first_turn=True)
        assert "STORY TOPIC:" in prompt

    def test_topic_with_braces_is_literal(self):
        prompt = build_prompt("{weird}", [], "", is_first_turn=True)
        assert "{weird}" in prompt


# ── Response normalizer: hard failures ──────────────────────────────

class TestNormalizerFailures:
    @pytest.mark.parametrize("raw", [
        "",
        "The narrator is silent.",
        "story: nothing here",
        "}{",
    ])
    def test_no_object_is_malformed(self, raw):
        with pytest.raises(MalformedResponse):
            normalize_response(raw)

    def test_unparseable_object_is_malformed(self):
        with pytest.raises(MalformedResponse):
            normalize_response('{"story": "x", choices: [}')

    def test_deeply_nested_json_is_malformed(self):
        raw = '{"story": "x", "choices": [], "junk": ' + "[" * 100_000 + "]" * 100_000 + "}"
        with pytest.raises(MalformedResponse):
            normalize_response(raw)

    @pytest.mark.parametrize("data", [
        {"choices": []},
        {"story": "", "choices": []},
        {"story": 42, "choices": []},
        {"story": "A tale."},
        {"story": "A tale.", "choices": "go north"},
    ])
    def test_missing_fields_are_invalid_shape(self, data):
        with pytest.raises(InvalidShape):
            normalize_response(json.dumps(data))


# ── Response normalizer: repairs ────────────────────────────────────

class TestNormalizerRepairs:
    def test_whitespace_story_is_kept(self):
        assert normalize_response(_raw(story="   ")).story == "   "

    def test_clean_payload_passes_through(self):
        payload = normalize_response(_raw())
        assert isinstance(payload, TurnPayload)
        assert payload.story == "You stand in a dark hall."
        assert payload.choices == [Choice(str(i), f"Action {i}") for i in range(1, 5)]

    def test_prose_and_fences_are_stripped(self):
        raw = "Sure! Here you go:\n```json\n" + _raw() + "\n```\nEnjoy."
        assert normalize_response(raw).story == "You stand in a dark hall."

    @pytest.mark.parametrize("count", [0, 1, 2, 3])
    def test_short_choice_lists_are_padded(self, count):
        given = [{"id": str(i), "text": f"Given {i}"} for i in range(1, count + 1)]
        payload = normalize_response(_raw(choices=given))
        assert len(payload.choices) == 4
        for position in range(count, 4):
            added = payload.choices[position]
            assert added.id == str(position + 1)
            assert added.text == DEFAULT_CHOICES[position]

    def test_padding_is_deterministic(self):
        raw = _raw(choices=[{"text": "Run"}])
        assert normalize_response(raw) == normalize_response(raw)

    def test_long_choice_lists_keep_first_four_in_order(self):
        given = [{"id": str(i), "text": f"Choice {i}"} for i in range(1, 8)]
        payload = normalize_response(_raw(choices=given))
        assert [c.text for c in payload.choices] == ["Choice 1", "Choice 2", "Choice 3", "Choice 4"]

    def test_long_story_is_truncated(self):
        story = "x" * 401
        payload = normalize_response(_raw(story=story))
        assert payload.story == "x" * 380 + "..."
        assert len(payload.story) == 383

    def test_story_at_limit_is_unchanged(self):
        story = "y" * 400
        assert normalize_response(_raw(story=story)).story == story

    def test_long_choice_text_is_truncated(self):
        text = "z" * 36
        payload = normalize_response(_raw(choices=[{"id": "1", "text": text}]))
        assert payload.choices[0].text == "z" * 32 + "..."
        assert len(payload.choices[0].text) == 35

    def test_choice_text_at_limit_is_unchanged(self):
        text = "w" * 35
        payload = normalize_response(_raw(choices=[{"id": "1", "text": text}]))
        assert payload.choices[0].text == text

    def test_missing_ids_and_texts_are_defaulted(self):
        choices = [{"text": "Run"}, {"id": "b"}, {"id": "c", "text": ""}, {}]
        payload = normalize_response(_raw(choices=choices))
        assert [c.id for c in payload.choices] == ["1", "b", "c", "4"]
        assert [c.text for c in payload.choices] == ["Run", "Option 2", "Option 3", "Option 4"]

    def test_numeric_ids_become_strings(self):
        choices = [{"id": i, "text": "Go"} for i in range(1, 5)]
        payload = normalize_response(_raw(choices=choices))
        assert [c.id for c in payload.choices] == ["1", "2", "3", "4"]

    def test_bare_string_choices_are_used_as_text(self):
        payload = normalize_response(_raw(choices=["Run", "Hide", 7, None]))
        assert [c.text for c in payload.choices] == ["Run", "Hide", "Option 3", "Option 4"]

    def test_duplicate_ids_are_tolerated(self):
        choices = [{"id": "1", "text": t} for t in ("A", "B", "C", "D")]
        payload = normalize_response(_raw(choices=choices))
        assert [c.id for c in payload.choices] == ["1", "1", "1", "1"]

    def test_extract_json_object_keeps_raw_choices(self):
        data = extract_json_object(_raw(choices=[{"text": "A"}]))
        assert data["choices"] == [{"text": "A"}]


# ── Fallback provider ───────────────────────────────────────────────

class TestFallbackProvider:
    def test_pool_has_at_least_five_entries(self):
        assert len(FALLBACK_POOL) >= 5

    @pytest.mark.parametrize("payload", FALLBACK_POOL)
    def test_every_pool_entry_is_already_valid(self, payload):
        assert payload.story.strip()
        assert len(payload.story) <= 400
        assert len(payload.choices) == 4
        assert all(0 < len(c.text) <= 35 for c in payload.choices)
        # normalization must not change a pool entry
        assert normalize_response(json.dumps(payload.to_dict())) == payload

    def test_seeded_rng_is_deterministic(self):
        a = FallbackProvider(rng=random.Random(7))
        b = FallbackProvider(rng=random.Random(7))
        assert [a.next() for _ in range(10)] == [b.next() for _ in range(10)]

    def test_next_draws_from_pool(self):
        provider = FallbackProvider()
        for _ in range(20):
            assert provider.next() in FALLBACK_POOL

    def test_custom_pool(self):
        only = TurnPayload("Only story.", [Choice(str(i), "Go") for i in range(1, 5)])
        assert FallbackProvider(pool=[only]).next() is only

    def test_empty_pool_rejected(self):
        with pytest.raises(ValueError):
            FallbackProvider(pool=[])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
