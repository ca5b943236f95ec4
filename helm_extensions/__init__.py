"""
helm-extensions manages helm based cluster extensions declaratively.

The desired repositories and charts are translated into Chart records, which
a leader elected controller converges into helm releases.
"""

__all__ = [
    "config",
    "manifest",
    "helm",
    "store",
    "extensions_controller",
    "exceptions",
]
