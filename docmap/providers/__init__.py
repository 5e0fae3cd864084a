"""Concrete adapters for the interfaces in :mod:`docmap.interfaces`."""
