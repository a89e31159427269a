# Storage package for blockcrack
"""
Namespaced JSON object store with an explicit load/save lifecycle.
"""
