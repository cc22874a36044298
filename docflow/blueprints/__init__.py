"""
Document Workflow Backend
Blueprint registry.
"""
