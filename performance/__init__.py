"""Load generation for the departement API.

- ``payloads``: department request bodies
- ``checks``: named response checks and their tally
- ``driver``: asyncio virtual users
- ``report``: run summary and text report
- ``profiler``: load-generator resource sampling
"""
