"""
Polyglot Shelf

Demonstration bookshop backend spread over five data stores, with a
warehouse loader that rebuilds a relational star schema for analytics.
"""

__version__ = "1.0.0"
