"""
nwlab: Northwind three-store lab provisioning

Brings a relational engine, a document store and a graph store from
"container started" to "queryable with verified data" in one run:

    acquire -> bring-up -> ready -> schema -> reset -> load -> verify

Core constraints:
- Safe to re-run without manual cleanup (staged data reused, tables reset)
- Each backend is loaded and verified independently
- A failure in one backend never blocks the others
"""

__version__ = "0.1.0"
