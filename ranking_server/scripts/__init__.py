"""Maintenance scripts run against Firestore."""
