"""Slack delivery: webhook digests, slash commands and the command server."""
