# KW OS - Core Library
"""
Domain services, storage, and the markdown sync engine.
"""
