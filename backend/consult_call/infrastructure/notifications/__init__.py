"""Notification dispatchers"""
