"""A JSON web service that aggregates RSS feeds into SQLite and serves the newest posts to followers."""

__version__ = "0.1.0"