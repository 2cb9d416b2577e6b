"""
Infrastructure layer - local storage
"""
