"""Announcement dispatch: SMS/push delivery and phone verification."""
