"""
Domain services for memberships, invitations, users, roles and notifications
"""
