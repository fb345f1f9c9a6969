"""
Domain layer: records, errors and collaborator interfaces.
"""
