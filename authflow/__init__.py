"""
authflow - completes sign in after a provider callback and issues the session.
"""

__version__ = "0.1.0"
