"""
Report generation.
"""
