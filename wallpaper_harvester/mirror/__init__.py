"""
Mirror Sync — Clone and fast-forward local mirrors of remote repositories.

This package holds the repository model, the git capability, failure
classification, and the orchestrator that runs a harvest.
"""
