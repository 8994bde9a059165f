"""
Shared infrastructure: configuration.
"""
