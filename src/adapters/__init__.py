"""Adapters binding the core ports to rich, urllib and subprocesses."""
