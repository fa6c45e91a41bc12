"""
TubeToolkit: a concurrent, crash-resumable media download queue with proxy rotation.
"""

__version__ = "1.2.0"
