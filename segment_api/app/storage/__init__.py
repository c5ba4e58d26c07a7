"""
Storage layer.  Only this package issues SQL.
"""
