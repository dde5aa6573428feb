"""
Shared utilities: configuration, structured logging and the error taxonomy.
"""
