"""
Leadflow Modules
"""
