"""
Perception Engine

Staged, fallback-aware, deadline-bounded ingredient perception.
"""
