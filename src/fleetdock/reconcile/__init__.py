"""
Environment reconciliation.

Container environments are immutable, so changing one means recreating
the container with the same image, configuration and network attachments
under the same name. The container ID changes; the name does not.
"""

__all__ = ["env", "models", "service"]
