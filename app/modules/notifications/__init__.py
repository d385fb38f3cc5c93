"""
Notifications module

In-app notifications for the report review workflow: submissions go to the
supervising office, approvals and rejections go back to the cooperative admins.
"""
