"""
Leadflow: lead enrichment pipeline core.
"""
