"""
Cooperatives module

The cooperative (koperasi) is the tenant of the system: every financial
report, KPI snapshot and widget belongs to exactly one cooperative.
"""
