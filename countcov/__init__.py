"""
countcov - Source-level coverage instrumentation for Python.

Rewrites parsed modules so that running them counts statements, branch
arms and function calls, then turns the counters into a report.

Usage:
    countcov instrument <file>   # Print the instrumented source
    countcov run <file>          # Run a file and report its coverage
"""

__version__ = "0.1.0"
