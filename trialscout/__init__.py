"""
TrialScout - clinical trial matching pipeline.
"""
__version__ = "1.0.0"
