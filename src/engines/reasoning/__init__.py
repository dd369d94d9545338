"""
Reasoning Engine

Protocol generation: external engine client with an offline fallback.
"""
