"""
Dashboard HTTP API: status records, operator actions and settings.
"""
