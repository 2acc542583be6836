"""egpipe: pipe newline-delimited JSON from stdin to an Event Grid topic."""

__version__ = "0.1.0"
