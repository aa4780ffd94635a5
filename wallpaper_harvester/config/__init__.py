"""
Configuration — Load and check harvest settings.
"""
