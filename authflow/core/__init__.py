"""
Core: settings, security helpers, cookies, events and provider protocols.
"""
