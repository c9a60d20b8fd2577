"""
Core Layer - records, execution primitives, scoring, pipeline and stage collaborators.
"""
