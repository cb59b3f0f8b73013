"""Media engines"""
