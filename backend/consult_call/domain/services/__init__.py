"""Call session services"""
