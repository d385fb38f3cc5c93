"""
Audit module

Append-only trail of who changed what: report lifecycle actions,
cooperative maintenance and batch exports all write an AuditLog row.
"""
