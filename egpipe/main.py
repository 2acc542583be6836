"""Entry point for egpipe."""

import logging
import signal
import sys
import threading

from egpipe.builder import EventBuilder
from egpipe.config import load_config
from egpipe.errors import PipeError
from egpipe.metrics import MetricsCollector
from egpipe.pipeline import run
from egpipe.publisher import EventPublisher
from egpipe.resolver import FieldResolver
from egpipe.sender import EventSender

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None, stream=None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(argv)
    except PipeError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    logging.getLogger().setLevel(config.log_level.upper())

    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, finishing current line...", signum)
        shutdown_event.set()

    previous_handlers = {
        signum: signal.signal(signum, handle_signal)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    resolver = FieldResolver(config.field_specs())
    sender = EventSender(
        config.endpoint_url(), config.headers, timeout=config.request_timeout
    )
    metrics = MetricsCollector()
    publisher = EventPublisher(
        sender,
        max_batch_size=config.queue_size,
        flush_interval=config.flush_interval_seconds,
        metrics=metrics,
        shutdown_event=shutdown_event,
    )

    logger.info(
        "Publishing to %s: queue_size=%d, flush_interval=%dms",
        sender.endpoint,
        config.queue_size,
        config.flush_interval,
    )

    status = 0
    try:
        resolver.compile_all()
        publisher.start()
        run(
            stream if stream is not None else sys.stdin,
            EventBuilder(resolver, topic=config.topic),
            publisher,
            shutdown_event,
            max_line_length=config.max_line_length,
        )
    except PipeError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        status = 1
    finally:
        publisher.stop()
        sender.close()
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)
        logger.info("Publisher metrics: %s", metrics.snapshot())
    return status


if __name__ == "__main__":
    sys.exit(main())
