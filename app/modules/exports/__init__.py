"""
Batch export of financial reports as zipped CSV files.
"""
