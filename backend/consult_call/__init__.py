"""Consultation video call signaling and session state"""
