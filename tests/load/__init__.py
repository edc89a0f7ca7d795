"""Load tests run under the Locust harness.

Not collected by the unit suite; run with ``locust -f tests/load/locustfile.py``.
"""
