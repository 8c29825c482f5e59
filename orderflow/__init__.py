"""Production order intake and approval workflow service."""

__version__ = "1.0.0"
