"""scanhook: GitHub webhook ingestion that queues scan jobs."""

__version__ = "0.1.0"
