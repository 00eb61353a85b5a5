"""
Infrastructure adapters of the Feed Service.
"""
