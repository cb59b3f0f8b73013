"""Collaborator implementations"""
