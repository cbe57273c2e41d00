"""
Origin admission policy for the proxy.
"""
