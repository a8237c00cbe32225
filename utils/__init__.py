"""
Process-level utilities: event log sink and startup checks
"""
