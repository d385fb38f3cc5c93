"""
Financial reports: lifecycle, validation and analysis of cooperative reports.
"""
