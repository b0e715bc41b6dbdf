"""sqlstore.core -- errors, logging, settings and SQL dialects.

Layer 1 -- Errors & Logging
    errors.py      Store error hierarchy (StoreError, NotFoundError, ...)
    logging.py     structlog configuration (configure_logging, get_logger)

Layer 2 -- Configuration & Dialects
    settings.py    StoreSettings (SQLSTORE_* environment variables)
    dialect.py     Per-backend identifier quoting, JSON functions, URLs
"""
