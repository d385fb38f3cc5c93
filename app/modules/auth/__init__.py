"""
Authentication: bearer tokens, users and the per-request cooperative context.
"""
