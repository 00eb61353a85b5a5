"""
Internal packages of the Feed Service.
"""
