"""Core domain package for ngs-log-watch.

Core contains log decoding, tailing, rules, counters and action dispatch
without any terminal, HTTP or process-specific code, keeping the business
logic portable.
"""
