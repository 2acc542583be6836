"""Tests for the Event model and batch encoding."""

import json

import pytest

from egpipe.errors import ParseError
from egpipe.models import Event, event_to_json, serialize_batch


def _event(**overrides) -> Event:
    defaults = {
        "id": "e1",
        "subject": "subj",
        "data": '{"k": "v"}',
        "event_type": "t",
        "event_time": "2020-12-18T16:43:55Z",
        "data_version": "1.0",
    }
    defaults.update(overrides)
    return Event(**defaults)


class TestEventToJson:
    def test_wire_names_and_order(self):
        text = event_to_json(_event(topic="/topic"))
        assert text == (
            '{"id":"e1","topic":"/topic","subject":"subj","data":{"k": "v"},'
            '"eventType":"t","eventTime":"2020-12-18T16:43:55Z","dataVersion":"1.0"}'
        )

    def test_empty_fields_omitted(self):
        decoded = json.loads(event_to_json(_event(subject="", data_version="")))
        assert "topic" not in decoded
        assert "subject" not in decoded
        assert "dataVersion" not in decoded

    def test_data_embedded_verbatim(self):
        raw = '{"z":1,   "a":  [1.50, "\\u00e9"]}'
        assert raw in event_to_json(_event(data=raw))

    def test_strings_escaped(self):
        decoded = json.loads(event_to_json(_event(subject='quo"te')))
        assert decoded["subject"] == 'quo"te'


class TestSerializeBatch:
    def test_array_in_order(self):
        body = serialize_batch([_event(id="a"), _event(id="b")])
        decoded = json.loads(body)
        assert [e["id"] for e in decoded] == ["a", "b"]
        assert decoded[0]["data"] == {"k": "v"}

    def test_non_json_data_rejected(self):
        with pytest.raises(ParseError):
            serialize_batch([_event(data="plain text")])

    @pytest.mark.parametrize("data", ['{"a": NaN}', '[Infinity]', '{"a": -Infinity}'])
    def test_non_standard_constants_rejected(self, data):
        with pytest.raises(ParseError):
            serialize_batch([_event(data=data)])
