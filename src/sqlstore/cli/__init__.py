"""Command-line interface (``sqlstore``)."""
