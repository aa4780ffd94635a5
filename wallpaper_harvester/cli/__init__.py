"""
CLI commands — split out of main.py by concern.
"""
