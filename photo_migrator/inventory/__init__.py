"""
Origin inventory sources.
"""

from .source import InventorySource, LocalDirectoryInventory, StaticInventory

__all__ = ["InventorySource", "LocalDirectoryInventory", "StaticInventory"]
