"""
Grid Fault Engine
Blueprint registry.
"""
