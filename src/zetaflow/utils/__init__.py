"""Utility modules for the ZetaFlow resolver."""
