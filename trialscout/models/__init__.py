"""
API Models Package
"""
