"""Signaling transports"""
