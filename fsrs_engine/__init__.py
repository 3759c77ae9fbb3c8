"""
FSRS scheduling engine: memory model, review scheduler and weight optimizer
"""
__version__ = "1.0.0"
