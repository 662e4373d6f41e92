"""
Ingestion Module
"""
from .seed_db import generate_fake_customers

__all__ = ["generate_fake_customers"]
