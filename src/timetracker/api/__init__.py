"""
TimeTracker Sync API
"""
