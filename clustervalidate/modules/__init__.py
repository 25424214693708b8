"""
Cluster validation modules.
"""
