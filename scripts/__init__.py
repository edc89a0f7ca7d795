"""Command-line entry points.

Scripts include:
- ``run_load_test.py``: run the departement load test and print the report.
"""
