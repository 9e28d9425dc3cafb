"""
Premium service package.
"""
