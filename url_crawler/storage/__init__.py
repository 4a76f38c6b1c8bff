"""
Visit state storage for the crawler.
"""

from .visit_store import InMemoryVisitStore, VisitRecord, VisitState, VisitStore

__all__ = ['InMemoryVisitStore', 'VisitRecord', 'VisitState', 'VisitStore']
