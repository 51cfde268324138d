"""apitrack - scheduled API checks.

Runs collections of HTTP tests on demand or on a recurring schedule,
records every run with its per-test results and mails a report after
scheduled runs.
"""

__version__ = "0.1.0"
