"""Tests for defensive parsing of model output."""

import json

import pytest

from lenslingua.errors import MalformedResponseError
from lenslingua.extraction.parsing import audio_format, image_prompt, parse_response

_PAYLOAD = {
    "items": [
        {
            "originalText": "焼き鳥",
            "translatedText": "Grilled chicken skewers",
            "context": "A common izakaya dish.",
            "allergens": "soy",
        }
    ]
}


class TestParseResponse:
    def test_plain_json(self):
        result = parse_response(json.dumps(_PAYLOAD))
        assert len(result.items) == 1
        assert result.items[0].original_text == "焼き鳥"
        assert result.items[0].allergens == "soy"

    def test_code_fences(self):
        text = "```json\n" + json.dumps(_PAYLOAD, indent=2) + "\n```"
        result = parse_response(text)
        assert result.items[0].translated_text == "Grilled chicken skewers"

    def test_backticks_inside_values_survive(self):
        payload = {"items": [{"originalText": "use ```sudo```", "translatedText": "```"}]}
        text = "```json\n" + json.dumps(payload) + "\n```"
        item = parse_response(text).items[0]
        assert item.original_text == "use ```sudo```"
        assert item.translated_text == "```"

    def test_backticks_without_outer_fence(self):
        payload = {"items": [{"originalText": "a ``` b", "translatedText": "c"}]}
        item = parse_response(json.dumps(payload)).items[0]
        assert item.original_text == "a ``` b"

    def test_leading_and_trailing_commentary(self):
        text = "Sure! Here is the result:\n" + json.dumps(_PAYLOAD) + "\nHope this helps."
        result = parse_response(text)
        assert len(result.items) == 1

    def test_no_braces(self):
        with pytest.raises(MalformedResponseError):
            parse_response("I could not read any text in this image.")

    def test_only_closing_brace_before_opening(self):
        with pytest.raises(MalformedResponseError):
            parse_response("} nothing {")

    def test_invalid_json_between_braces(self):
        with pytest.raises(MalformedResponseError):
            parse_response('{"items": [oops]}')

    def test_empty(self):
        with pytest.raises(MalformedResponseError):
            parse_response("")
        with pytest.raises(MalformedResponseError):
            parse_response(None)

    def test_missing_items(self):
        with pytest.raises(MalformedResponseError):
            parse_response('{"result": []}')

    def test_items_not_a_list(self):
        with pytest.raises(MalformedResponseError):
            parse_response('{"items": "ramen"}')

    def test_empty_items_is_valid(self):
        assert parse_response('{"items": []}').items == []

    def test_optional_fields_default(self):
        result = parse_response('{"items": [{"originalText": "a", "translatedText": "b"}]}')
        assert result.items[0].context == ""
        assert result.items[0].allergens == ""

    def test_null_and_list_fields(self):
        text = json.dumps({
            "items": [{
                "originalText": "a", "translatedText": "b",
                "context": None, "allergens": ["milk", "egg"],
            }]
        })
        item = parse_response(text).items[0]
        assert item.context == ""
        assert item.allergens == "milk, egg"

    def test_junk_items_dropped(self):
        text = json.dumps({
            "items": ["text", {"context": "only context"}, {"originalText": "ok", "translatedText": "ok"}]
        })
        result = parse_response(text)
        assert [i.original_text for i in result.items] == ["ok"]


class TestAudioFormat:
    @pytest.mark.parametrize(
        "mime, expected",
        [
            ("audio/webm;codecs=opus", "webm"),
            ("audio/webm", "webm"),
            ("audio/ogg; codecs=opus", "ogg"),
            ("audio/wav", "wav"),
            ("audio/x-wav", "wav"),
            ("audio/mpeg", "mp3"),
            ("audio/mp4", "m4a"),
            ("audio/x-m4a", "m4a"),
            ("audio/flac", "flac"),
            ("audio/x-custom", "custom"),
        ],
    )
    def test_mapping(self, mime, expected):
        assert audio_format(mime) == expected


def test_image_prompt_mentions_language():
    assert "Korean" in image_prompt("Korean")
    assert '"items"' in image_prompt("Korean")
