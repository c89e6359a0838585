"""Notification delivery service."""
