"""End-to-end tests for the command-line entry point."""

import io
import signal

import pytest

from egpipe.main import main


def _argv(receiver, *extra):
    return [
        receiver.host,
        "--publish-scheme", "http",
        "-H", "foo=bar",
        "-i", "jp:id",
        "-s", "my subject",
        "-t", "jp:type",
        "-T", "jp:time",
        "--flush-interval", "0",
        *extra,
    ]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("EGPIPE_TOPIC_HOST", "EGPIPE_SUBJECT", "EGPIPE_TYPE", "EGPIPE_QUEUE_SIZE"):
        monkeypatch.delenv(name, raising=False)


class TestMain:
    def test_publishes_and_exits_zero(self, receiver):
        stream = io.StringIO(
            '{"id": "asdf", "time": "1608309835000", "type": "foo"}\n'
            '{"id": "asdf", "time": "1608309835000", "type": "bar"}\n'
        )
        assert main(_argv(receiver), stream=stream) == 0

        assert receiver.wait_for(1)
        batch = receiver.batches[0]
        assert [e["eventType"] for e in batch] == ["foo", "bar"]
        assert all(e["eventTime"] == "2020-12-18T16:43:55Z" for e in batch)
        assert receiver.requests[0]["path"] == "/api/events?api-version=2018-01-01"
        assert receiver.requests[0]["headers"]["foo"] == "bar"

    def test_delivery_failure_exits_one(self, receiver):
        receiver.status = 400
        stream = io.StringIO('{"id": "a", "time": "0", "type": "x"}\n')
        assert main(_argv(receiver), stream=stream) == 1

    def test_bad_timestamp_exits_one(self, receiver):
        stream = io.StringIO('{"id": "a", "time": "later", "type": "x"}\n')
        assert main(_argv(receiver), stream=stream) == 1
        assert receiver.requests == []

    def test_bad_query_exits_one_before_reading(self, receiver):
        stream = io.StringIO('{"id": "a"}\n')
        argv = _argv(receiver) + ["-s", "jp:[[["]
        assert main(argv, stream=stream) == 1
        assert stream.tell() == 0

    def test_missing_subject_exits_one(self, receiver):
        assert main([receiver.host, "-t", "x"], stream=io.StringIO("")) == 1

    def test_usage_error_exits_two(self):
        with pytest.raises(SystemExit) as excinfo:
            main(["--queue-size", "many"], stream=io.StringIO(""))
        assert excinfo.value.code == 2

    def test_signal_handlers_restored(self, receiver):
        before = signal.getsignal(signal.SIGTERM)
        main(_argv(receiver), stream=io.StringIO(""))
        assert signal.getsignal(signal.SIGTERM) is before
