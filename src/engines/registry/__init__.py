"""
Model Registry

Catalog of local inference capabilities.
"""
