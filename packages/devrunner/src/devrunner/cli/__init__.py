"""Command line interface for devrunner."""
