"""TimeTracker Sync - push time entries into Jira worklogs over OAuth 1.0a."""

__version__ = "1.0.0"
