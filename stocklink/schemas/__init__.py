"""
Schema exports for the application.
"""
