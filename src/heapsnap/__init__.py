"""heapsnap - heap snapshot sampler for long-running Python processes."""

__version__ = "1.0.0"
