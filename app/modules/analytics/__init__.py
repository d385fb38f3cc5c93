"""
Analytics: role dashboards, KPIs and dashboard widgets.
"""
