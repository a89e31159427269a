# Ingestion package for blockcrack
"""
Block-list retrieval from Mastodon instances.
"""
