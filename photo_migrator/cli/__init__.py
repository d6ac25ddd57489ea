"""
Command-line interface for the Photo Migrator.
"""
