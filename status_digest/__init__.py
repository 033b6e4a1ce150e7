"""Weekly status digests from Bugzilla and Jira."""

__version__ = "0.1.0"
