"""jobsync: offline-first sync core for jobs, quotes, invoices and the parts catalog."""

__version__ = "0.3.0"
