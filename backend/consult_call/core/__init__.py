"""Core configuration and startup validation"""
