"""
Composition root and the Qt boundary.
"""
