"""
Core modules for Data Watchdog.

This package contains the usage analytics engine: rolling per-app history,
drain detection, bundle exhaustion prediction, and cycle orchestration.
"""
